"""
Web advice endpoint - one-shot advice panel without a Telegram session

POST /api/advice {"situation": "..."} -> советы трёх советников по умолчанию
и общий вывод. Сессий, квот и follow-up вопросов здесь нет.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from boardview.generation import (
    AdvicePanelService,
    AdvisorPool,
    build_generator,
    load_advisor_pool,
)
from core.config import get_config
from core.exceptions import GenerationFailure
from core.logging import setup_logging

logger = logging.getLogger(__name__)


class AdviceRequest(BaseModel):
    situation: str = Field(..., description="Описание ситуации пользователя")


class AdvisorAdviceOut(BaseModel):
    id: str
    name: str
    advice: str


class AdviceResponse(BaseModel):
    advisors: List[AdvisorAdviceOut]
    synthesis: str


def create_app(panel_service: Optional[AdvicePanelService] = None,
               pool: Optional[AdvisorPool] = None,
               min_situation_length: Optional[int] = None) -> FastAPI:
    """
    Собрать FastAPI приложение

    Без panel_service генератор строится из конфигурации при старте
    и закрывается при остановке.
    """
    config = get_config()
    pool = pool or load_advisor_pool()
    min_length = (min_situation_length if min_situation_length is not None
                  else config.consultation.min_situation_length)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        generator = None
        if app.state.panel_service is None:
            generator = build_generator(config.ai)
            app.state.panel_service = AdvicePanelService(generator)
            logger.info(f"🚀 Advice endpoint started ({config.ai.provider}/{config.ai.default_model})")
        yield
        if generator is not None:
            await generator.close()
            logger.info("🛑 Advice endpoint generator closed")

    app = FastAPI(title="Boardview", lifespan=lifespan)
    app.state.panel_service = panel_service

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/api/advice", response_model=AdviceResponse)
    async def advice(request: AdviceRequest):
        situation = request.situation.strip()
        if len(situation) < min_length:
            raise HTTPException(
                status_code=422,
                detail=f"Situation must be at least {min_length} characters"
            )

        personas = pool.default_trio()
        start_time = time.time()
        try:
            panel = await app.state.panel_service.generate_panel(situation, personas)
        except GenerationFailure as e:
            logger.error(f"❌ Web advice failed: {e.message}")
            raise HTTPException(status_code=502, detail="Advice generation failed")

        logger.info(f"✅ Web advice generated in {time.time() - start_time:.2f}s")
        return AdviceResponse(
            advisors=[
                AdvisorAdviceOut(id=persona.id, name=persona.name, advice=panel.text_for(persona.id) or "")
                for persona in personas
            ],
            synthesis=panel.synthesis,
        )

    return app


def run():
    setup_logging()
    config = get_config()
    uvicorn.run(create_app(), host=config.web.host, port=config.web.port)


if __name__ == "__main__":
    run()
