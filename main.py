from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
from dotenv import load_dotenv
import models
from database import engine
from routers import companion

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create tables
models.Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Zentia Companion API",
    version="1.0.0",
    description="Context retrieval and ranking for the Zentia AI companion",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)

# Include routers
app.include_router(companion.router, prefix="/companion", tags=["AI Companion"])


@app.get("/")
async def root():
    return {"message": "Zentia Companion API", "version": "1.0.0", "docs": "/docs"}
