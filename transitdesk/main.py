from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from transitdesk.src import schemas
from transitdesk.src.constants import API_TITLE, API_VERSION
from transitdesk.api.controller import app_api


app = FastAPI(title=API_TITLE, version=API_VERSION)

origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/api", app_api, "TransitDesk API")


# Health check endpoint
@app.get("/health", tags=["Health Check"], response_model=schemas.HealthStatus)
async def health_check():
    return {"status": "OK", "version": API_VERSION}
