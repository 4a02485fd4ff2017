import uvicorn
from fastapi import FastAPI
from api.routers import stabilization
from core.config import settings
from utils.logger import setup_logging

# Setup logging
logger = setup_logging()
logger.info("Starting Sensum Anthropometry API")

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Landmark stabilization for pose detector streams",
    version="0.1.0"
)

# Include routers
app.include_router(stabilization.router, prefix=settings.API_V1_STR, tags=["Landmark Stabilization"])

@app.get("/")
def read_root():
    return {"message": "Welcome to Sensum Anthropometry API", "version": "0.1.0"}

@app.get("/health")
def health_check():
    return {"status": "healthy"}

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
