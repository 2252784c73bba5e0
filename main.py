from fastapi import FastAPI
from loguru import logger
from princelab.api import router as princelab_router, get_orchestrator
from princelab.core.sweeper import LifecycleSweeper
from princelab.logging import setup_logger
from princelab.settings import settings

app = FastAPI(title="PrinceLab WhatsApp bot")
app.include_router(princelab_router)


def current_orchestrator():
    # Honour dependency_overrides so the sweeper and the routes share one store
    return app.dependency_overrides.get(get_orchestrator, get_orchestrator)()


@app.on_event("startup")
async def startup_event():
    setup_logger()
    orchestrator = current_orchestrator()
    app.state.sweeper = LifecycleSweeper(orchestrator.store, orchestrator.limiter)
    app.state.sweeper.start()
    logger.info(
        f"PrinceLab bot ready (model={settings.LLM_MODEL}, "
        f"limits={settings.PER_MIN_LIMIT}/min {settings.PER_HOUR_LIMIT}/h)"
    )

@app.on_event("shutdown")
async def shutdown_event():
    await app.state.sweeper.stop()
    await current_orchestrator().drain()
    logger.info("PrinceLab bot stopped.")

@app.get("/health")
def health_check():
    logger.info("Health check endpoint called.")
    return {"status": "ok"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=settings.PORT, reload=True)
