from dotenv import load_dotenv

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .chat import routers as chat_router
from .farmers import routers as farmers_router

from .core.middleware import logging_middleware
from .utils.env_helper import env_list
from .utils.logging_config import setup_logging

load_dotenv()
setup_logging()

app = FastAPI(title="Farm Messaging")
app.include_router(chat_router.router, prefix="/chat", tags=["Chat"])
app.include_router(farmers_router.router, prefix="/farmers", tags=["Farmers"])

origins = env_list(
    "CORS_ORIGINS",
    default=[
        "http://localhost:5173",
        "http://localhost:8080",
    ],
)

app.middleware("http")(logging_middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health():
    return {"status": "ok"}

