from fastapi import FastAPI
from contextlib import asynccontextmanager
from dotenv import load_dotenv
import logging

# Load environment variables from .env file
load_dotenv()

# 로깅 설정
logging.basicConfig(
    level=logging.INFO,
    format='[%(levelname)s] %(message)s'
)
# 외부 라이브러리 로그 줄이기
logging.getLogger("aiosqlite").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("asyncssh").setLevel(logging.WARNING)

from hostsurvey.api.routes import router
from hostsurvey.models.database import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(
    title="Remote Host Survey",
    version="1.0.0",
    description="Remote filesystem collection with per-host local mirroring",
    lifespan=lifespan
)

app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    # 127.0.0.1 = localhost 전용 (외부 접근 차단)
    uvicorn.run(
        app,
        host="127.0.0.1",
        port=8000,
        log_level="warning",
        access_log=False
    )
