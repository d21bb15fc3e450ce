"""Trainer API — FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trainer.api.routers import catalog, workout

app = FastAPI(title="trainer", version="0.1.0")

# CORS: allow the web client dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(catalog.router)
app.include_router(workout.router)


@app.get("/health")
def health():
    return {"status": "ok"}
