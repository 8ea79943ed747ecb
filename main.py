import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from cyberguard.shared.config import DatabaseConfig
from cyberguard.shared.db import ConnectionManager
from cyberguard.shared.schema import create_tables
from cyberguard.shared.seed import seed_data
from cyberguard.reports.router import router as reports_router
from cyberguard.dashboard.router import router as dashboard_router

load_dotenv()

app = FastAPI(title="CyberGuard Incident Portal API")

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(reports_router, prefix="/api")
app.include_router(dashboard_router, prefix="/api")


@app.on_event("startup")
async def startup_event():
    """Connect the pool, create tables and seed reference data"""
    app.state.db = ConnectionManager(DatabaseConfig.from_env())
    await app.state.db.connect()
    await create_tables(app.state.db)
    await seed_data(app.state.db)


@app.on_event("shutdown")
async def shutdown_event():
    db = getattr(app.state, "db", None)
    if db is not None:
        await db.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
