from mentalboost.app import create_app
from mentalboost.config import load_config

config = load_config()
app = create_app(config)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
