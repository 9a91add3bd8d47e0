from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from anamnesportalen.logging_config import configure_logging
from anamnesportalen.routers.forms import router as forms_router
from anamnesportalen.routers.entries import router as entries_router

configure_logging()

app = FastAPI(title="Anamnesportalen Backend (FastAPI + Mongo)")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # patient links are opened from any booking system
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(forms_router)
app.include_router(entries_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
