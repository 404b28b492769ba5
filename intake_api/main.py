import logging

from fastapi import FastAPI

from common.config import settings
from intake_api.lead_routes import leads_router


logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s"
)

app = FastAPI(
    title="Leads API",
    summary="API for creating leads, routing them to sales reps and recording sales activity",
)

app.include_router(leads_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
