import asyncio
from typing import Optional

import statsd
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse
from sqlmodel import create_engine

from mentalboost.assistant import OllamaResponseGenerator, OpenAIResponseGenerator, ResponseGenerator
from mentalboost.auth import AuthService, LocalIdentityStore
from mentalboost.config import AppConfig, load_config
from mentalboost.emotion import EmotionDetector, FrameBuffer, NullDetector
from mentalboost.errors import AuthError, SessionNotFound, StoreError
from mentalboost.history import DateRange, all_emotions, filter_records
from mentalboost.logging_config import get_logger
from mentalboost.models import COMMUNICATION_STYLES
from mentalboost.session import SessionManager
from mentalboost.speech import PushTranscriber
from mentalboost.store import ProfileStore, SessionStore

logger = get_logger(__name__)

HOME = {
    "title": "Mental Boost",
    "tagline": "Emotion-aware support, whenever you need it.",
    "how_it_works": [
        {"title": "Emotion Recognition", "text": "Your camera lets the assistant notice how you are feeling while you talk."},
        {"title": "AI Therapy Assistant", "text": "An empathetic assistant responds to what you say and how you feel."},
        {"title": "Continuous Support", "text": "Every session is saved so you can look back on your progress."},
    ],
    "features": [
        "Secure & Private",
        "24/7 Availability",
        "Advanced AI",
        "Real-time Analysis",
        "Personalized Plan",
        "Progress Tracking",
    ],
    "disclaimer": (
        "While our AI assistant can provide support, it is not a replacement for professional mental health treatment."
    ),
}

EMERGENCY_RESOURCES = [
    {"name": "National Suicide Prevention Lifeline", "availability": "Available 24/7", "contact": "1-800-273-8255"},
    {"name": "Crisis Text Line", "availability": "Available 24/7 in the USA", "contact": "Text HOME to 741741"},
    {"name": "Emergency Services", "availability": "For immediate danger, call emergency services", "contact": "911"},
]


def failure(error: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def build_generator(config: AppConfig, metrics: statsd.StatsClient) -> ResponseGenerator:
    if config.llm.provider == "ollama":
        return OllamaResponseGenerator(metrics=metrics, model=config.llm.ollama_model,
                                       ctx_window=config.llm.ctx_window,
                                       OLLAMA_SERVE_URL=config.llm.ollama_serve_url)
    return OpenAIResponseGenerator(metrics=metrics, openai_api_key=config.llm.openai_api_key,
                                   model=config.llm.openai_model)


def build_session_manager(config: AppConfig, generator: ResponseGenerator, store: SessionStore,
                          metrics: statsd.StatsClient, detector: Optional[EmotionDetector]) -> SessionManager:
    camera_factory = FrameBuffer
    transcriber_factory = PushTranscriber

    # device backends pull in heavy optional dependencies, only import them when asked for
    if detector is None and config.session.emotion_detector == "deepface":
        from mentalboost.vision import DeepFaceDetector
        detector = DeepFaceDetector()
    if config.session.camera_source == "device":
        from mentalboost.vision import OpenCVCamera
        camera_factory = OpenCVCamera
    if config.session.speech_source == "microphone":
        from mentalboost.microphone import MicrophoneTranscriber
        transcriber_factory = MicrophoneTranscriber

    return SessionManager(
        generator=generator,
        store=store,
        metrics=metrics,
        detector=detector or NullDetector(),
        camera_factory=camera_factory,
        transcriber_factory=transcriber_factory,
        detection_interval=config.session.emotion_poll_interval,
    )


def create_app(
    config: Optional[AppConfig] = None,
    generator: Optional[ResponseGenerator] = None,
    session_store: Optional[SessionStore] = None,
    profile_store: Optional[ProfileStore] = None,
    auth: Optional[AuthService] = None,
    metrics: Optional[statsd.StatsClient] = None,
    detector: Optional[EmotionDetector] = None,
) -> FastAPI:
    config = config or load_config()
    metrics = metrics or statsd.StatsClient(host=config.metrics.host, port=config.metrics.port,
                                            prefix=config.metrics.prefix)
    if session_store is None or profile_store is None:
        engine = create_engine(config.database_url)
        session_store = session_store or SessionStore(engine)
        profile_store = profile_store or ProfileStore(engine)
    generator = generator or build_generator(config, metrics)
    auth = auth or AuthService(LocalIdentityStore(config.auth.identity_file), delay=config.auth.delay)
    sessions = build_session_manager(config, generator, session_store, metrics, detector)

    app = FastAPI(title="Mental Boost")
    app.state.auth = auth
    app.state.sessions = sessions

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"]
    )

    @app.on_event("startup")
    async def _restore_identity():
        # restoring waits out the artificial delay, do not hold up startup for it
        app.state.restore_task = asyncio.create_task(auth.restore())

    @app.get("/")
    def _home():
        return HOME

    @app.get("/resources")
    def _resources():
        return {"resources": EMERGENCY_RESOURCES}

    @app.post("/auth/login")
    async def _login(req: Request):
        body = await req.json()
        try:
            user = await auth.login(body.get("email", ""), body.get("password", ""))
        except AuthError as e:
            return failure(str(e))
        return {"success": True, "user": user.to_dict()}

    @app.post("/auth/register")
    async def _register(req: Request):
        body = await req.json()
        try:
            user = await auth.register(body.get("name", ""), body.get("email", ""), body.get("password", ""))
        except AuthError as e:
            return failure(str(e))
        return {"success": True, "user": user.to_dict()}

    @app.post("/auth/logout")
    def _logout():
        auth.logout()
        return {"success": True}

    @app.get("/auth/me")
    def _me():
        return {
            "state": auth.state.value,
            "user": auth.user.to_dict() if auth.user else None,
        }

    @app.get("/profile")
    def _get_profile():
        if auth.user is None:
            return failure("not signed in", 401)
        try:
            profile = profile_store.get(auth.user)
        except StoreError as e:
            logger.error(f"Error loading profile: {e}")
            return failure("could not load profile", 503)
        return {"success": True, "profile": profile.model_dump()}

    @app.put("/profile")
    async def _update_profile(req: Request):
        if auth.user is None:
            return failure("not signed in", 401)
        body = await req.json()

        style = body.get("communication_style")
        if "communication_style" in body and style not in COMMUNICATION_STYLES:
            return failure(f"unknown communication style {style}")

        try:
            profile = profile_store.get(auth.user)
            for key in ("full_name", "email", "dob", "gender", "phone", "medical_history",
                        "therapy_goals", "profile_picture"):
                if key in body:
                    setattr(profile, key, body[key])
            emergency_contact = body.get("emergency_contact") or {}
            for key in ("name", "relationship", "phone"):
                if key in emergency_contact:
                    setattr(profile, f"emergency_contact_{key}", emergency_contact[key])
            if style is not None:
                profile.communication_style = style
            profile = profile_store.save(profile)
        except StoreError as e:
            logger.error(f"Error saving profile: {e}")
            return failure("could not save profile", 503)

        auth.update_identity(profile.full_name, profile.email, profile.profile_picture)
        return {"success": True, "profile": profile.model_dump()}

    @app.get("/history")
    def _history(req: Request):
        if auth.user is None:
            return failure("not signed in", 401)
        emotions = req.query_params.getlist("emotions")
        try:
            date_range = DateRange(req.query_params.get("range", "all"))
        except ValueError:
            return failure(f"unknown date range {req.query_params.get('range')}")

        try:
            records = session_store.query(auth.user.id)
        except StoreError as e:
            logger.error(f"Error loading history: {e}")
            return failure("could not load history", 503)

        return {
            "success": True,
            "emotions": all_emotions(records),
            "sessions": [record.model_dump(mode="json") for record in filter_records(records, emotions, date_range)],
        }

    @app.post("/sessions")
    async def _start_session(req: Request):
        if auth.user is None:
            return failure("not signed in", 401)
        body = await req.json()

        try:
            style = profile_store.get(auth.user).communication_style
        except StoreError as e:
            logger.warning(f"Starting session without profile preferences: {e}")
            style = None

        loop = sessions.create(
            user_id=auth.user.id,
            camera=body.get("camera", True),
            microphone=body.get("microphone", True),
            communication_style=style,
        )
        return {"success": True, "session": loop.snapshot()}

    @app.get("/sessions/{session_id}")
    def _get_session(session_id: str):
        try:
            loop = sessions.get(session_id)
        except SessionNotFound as e:
            return failure(str(e), 404)
        return {"success": True, "session": loop.snapshot()}

    @app.post("/sessions/{session_id}/messages")
    async def _send_message(session_id: str, req: Request):
        body = await req.json()
        try:
            loop = sessions.get(session_id)
        except SessionNotFound as e:
            return failure(str(e), 404)

        text = body.get("text")
        if text is None:
            text = loop.input_buffer
        task = loop.send(text)
        if task is not None and body.get("wait", True):
            await task
        return {"success": True, "sent": task is not None, "session": loop.snapshot()}

    @app.post("/sessions/{session_id}/frames")
    async def _push_frame(session_id: str, req: Request):
        try:
            loop = sessions.get(session_id)
        except SessionNotFound as e:
            return failure(str(e), 404)
        if not isinstance(loop.camera, FrameBuffer):
            return failure("this session reads frames from a local camera")
        if not loop.camera_enabled:
            return {"success": True, "accepted": False}

        loop.camera.push(await req.body())
        return {"success": True, "accepted": True}

    @app.post("/sessions/{session_id}/transcript")
    async def _push_transcript(session_id: str, req: Request):
        body = await req.json()
        try:
            loop = sessions.get(session_id)
        except SessionNotFound as e:
            return failure(str(e), 404)
        if not isinstance(loop.transcriber, PushTranscriber):
            return failure("this session listens to a local microphone")

        accepted = loop.transcriber.push(body.get("text", ""))
        return {"success": True, "accepted": accepted, "session": loop.snapshot()}

    @app.post("/sessions/{session_id}/camera")
    async def _toggle_camera(session_id: str, req: Request):
        body = await req.json()
        try:
            loop = sessions.get(session_id)
        except SessionNotFound as e:
            return failure(str(e), 404)
        loop.set_camera(bool(body.get("enabled", not loop.camera_enabled)))
        return {"success": True, "session": loop.snapshot()}

    @app.post("/sessions/{session_id}/microphone")
    async def _toggle_microphone(session_id: str, req: Request):
        body = await req.json()
        try:
            loop = sessions.get(session_id)
        except SessionNotFound as e:
            return failure(str(e), 404)
        loop.set_microphone(bool(body.get("enabled", not loop.microphone_enabled)))
        return {"success": True, "session": loop.snapshot()}

    @app.post("/sessions/{session_id}/end")
    async def _end_session(session_id: str, req: Request):
        body = await req.json()
        try:
            ended = await sessions.end(session_id, confirmed=bool(body.get("confirm", False)))
        except SessionNotFound as e:
            return failure(str(e), 404)
        if not ended:
            return failure("ending the session needs confirmation", 409)
        return {"success": True}

    @app.get("/end-stale-sessions")
    async def _end_stale_sessions():
        try:
            ended = await sessions.end_stale_sessions(config.session.stale_session_minutes)
        except StoreError as e:
            logger.error(f"Error closing stale sessions: {e}")
            return failure("could not close stale sessions", 503)
        return {"success": True, "ended": ended}

    return app
