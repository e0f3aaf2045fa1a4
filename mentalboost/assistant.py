import json
from typing import List, Optional

import requests
import statsd
from openai import OpenAI

from mentalboost.errors import RequestError
from mentalboost.logging_config import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an empathetic AI therapist. Respond with understanding and professional therapeutic insights. "
    "Keep responses concise and focused on helping the user process their emotions and develop coping strategies."
)

SUMMARY_PROMPT = (
    "Summarize this therapy session in two sentences for the client's history. "
    "Mention the main topics and any coping strategies that came up."
)

STYLE_HINTS = {
    "direct": "The client prefers a direct and straightforward tone.",
    "supportive": "The client prefers a supportive and encouraging tone.",
    "analytical": "The client prefers an analytical and logical tone.",
    "empathetic": "The client prefers an empathetic and understanding tone.",
}

HISTORY_WINDOW = 5


class ResponseGenerator:
    def __init__(self, metrics: statsd.StatsClient, model: str, communication_style: Optional[str] = None):
        self.metrics = metrics
        self.model_version = model
        self.communication_style = communication_style

    def build_system_prompt(self, communication_style: Optional[str] = None) -> str:
        hint = STYLE_HINTS.get(communication_style or self.communication_style)
        if hint is None:
            return SYSTEM_PROMPT
        return SYSTEM_PROMPT + " " + hint

    @staticmethod
    def build_context(emotion: Optional[str], history: List[str]) -> str:
        context = "Previous conversation:\n" + "\n".join(history[-HISTORY_WINDOW:])
        if emotion:
            context += f"\nDetected emotion: {emotion}"
        return context

    def build_messages(self, message: str, emotion: Optional[str], history: List[str],
                       communication_style: Optional[str] = None) -> List[dict]:
        return [
            {
                "role": "system",
                "content": self.build_system_prompt(communication_style)
            },
            {
                "role": "user",
                "content": f"Context: {self.build_context(emotion, history)}\n\nUser: {message}"
            }
        ]

    # this method should be overriden in the implementation
    def get_completion(self, messages: List[dict]) -> str:
        raise NotImplementedError

    def generate(self, message: str, emotion: Optional[str], history: List[str],
                 communication_style: Optional[str] = None) -> str:
        self.metrics.incr("generate")
        with self.metrics.timer("generate_response.timed"):
            completion = self.get_completion(self.build_messages(message, emotion, history, communication_style))

        if not completion or not completion.strip():
            self.metrics.incr("errors.generate_response")
            raise RequestError("the model returned an empty reply")
        return completion

    def summarize(self, transcript: List[str]) -> str:
        messages = [
            {
                "role": "system",
                "content": SUMMARY_PROMPT
            },
            {
                "role": "user",
                "content": "\n".join(transcript)
            }
        ]
        return self.get_completion(messages).strip()


class OpenAIResponseGenerator(ResponseGenerator):
    def __init__(self, metrics: statsd.StatsClient, openai_api_key: str, model: str = "gpt-3.5-turbo", communication_style: Optional[str] = None):
        super().__init__(metrics=metrics, model=model, communication_style=communication_style)
        self.openai_client = OpenAI(api_key=openai_api_key)

    def get_completion(self, messages: List[dict]) -> str:
        try:
            response = self.openai_client.chat.completions.create(
                model=self.model_version, messages=messages
            )
            content = response.choices[0].message.content
        except Exception as e:
            self.metrics.incr("errors.generate_response")
            logger.error(f"OpenAI completion failed: {e}")
            raise RequestError(f"Failed to generate response: {e}") from e

        self.metrics.incr("success.generate_response")
        if response.usage:
            logger.debug(f"OpenAI usage: {response.usage.total_tokens} tokens")
        return content or ""


class OllamaResponseGenerator(ResponseGenerator):
    def __init__(
        self,
        metrics: statsd.StatsClient,
        model: str = "llama2",
        ctx_window: int = 4096,
        OLLAMA_SERVE_URL: str = "http://127.0.0.1:11434",
        communication_style: Optional[str] = None,
    ):
        super().__init__(metrics=metrics, model=model, communication_style=communication_style)
        self.chat_endpoint = f"{OLLAMA_SERVE_URL}/api/chat"
        self.ctx_window = ctx_window

    def get_completion(self, messages: List[dict]) -> str:
        body = {
            "model": self.model_version,
            "messages": messages,
            "options": {
                "num_ctx": self.ctx_window,
            },
        }
        try:
            response = requests.post(self.chat_endpoint, data=json.dumps(body), timeout=120)
            response.raise_for_status()
            responses = response.content.decode("utf-8")

            # ollama streams one json object per line, the last one only carries the summary
            response_bulk = [
                json.loads(response_str).get("message", {}).get("content", "")
                for response_str in responses.splitlines()
                if response_str.strip()
            ]
        except (requests.exceptions.RequestException, ValueError) as e:
            self.metrics.incr("errors.generate_response")
            logger.error(f"Ollama completion failed: {e}")
            raise RequestError(f"Failed to generate response: {e}") from e

        self.metrics.incr("success.generate_response")
        return "".join(response_bulk)
