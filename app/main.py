# app/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from app.routers import holdings, market, risk, users
from app.scheduler import agent_scheduler
from app.config import settings
from app.database import init_db
from app.dependencies import get_agent
from app.utils.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    await init_db()
    logger.info("Database initialized successfully")

    agent = get_agent()
    agent_scheduler.start()
    agent_scheduler.schedule_expiry_sweep(agent.expire_stale_orders)
    await agent.recover()
    yield
    agent_scheduler.shutdown()
    logger.info("Application shutting down")


app = FastAPI(
    title=settings.APP_NAME,
    description="Stop-loss monitoring and automatic sell execution",
    version="1.0.0",
    license_info={
        "name": "Apache 2.0",
        "url": "https://www.apache.org/licenses/LICENSE-2.0.html",
    },
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(risk.router, prefix="/risk", tags=["Risk"])
app.include_router(holdings.router, prefix="/holdings", tags=["Holdings"])
app.include_router(market.router, prefix="/market", tags=["Market"])
app.include_router(users.router, prefix="/users", tags=["Users"])


@app.get("/")
def root():
    return {"message": "Auto-Sell Agent Running"}
