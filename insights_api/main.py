import logging

from fastapi import FastAPI

from common.config import settings
from insights_api.insights_routes import insights_router


logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s"
)

app = FastAPI(
    title="Insights API",
    summary="API for lead workflows, close probability and follow-up recommendations",
)


app.include_router(insights_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
