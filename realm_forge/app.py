from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from realm_forge.config import data_dir_from_env
from realm_forge.llm import LLM
from realm_forge.routes import router
from realm_forge.runtime import init_runtime

load_dotenv(Path.cwd() / ".env")


def create_app(data_dir: Path | None = None, llm: LLM | None = None) -> FastAPI:
    resolved = data_dir or data_dir_from_env()
    init_runtime(resolved, llm=llm)

    app = FastAPI(title="Realm Forge")
    app.include_router(router, prefix="/api")
    return app
