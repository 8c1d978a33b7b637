from __future__ import annotations

import hashlib
import threading
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException, Request
from pydantic import BaseModel

from .cards import attachment_data_uri, notes_html
from .config import ALL_SET, Config, SetConfig, STORE_PATH, load_config
from .models import OUTCOMES, Card, CardSet, Completion
from .stats import heatmap, time_summary
from .store import Store, UnknownCardError, UnknownSetError
from .views import BayesianView, SamplingError, UnknownViewError, ViewRegistry, default_registry

API_PREFIX = "/api/v1"

_PALETTE: tuple[tuple[str, str], ...] = (
    ("#ad5389", "linear-gradient(315deg, #3c1053, #ad5389)"),
    ("#00b4db", "linear-gradient(315deg, #0083b0, #00b4db)"),
    ("#f3f9a7", "linear-gradient(315deg, #cac531, #f3f9a7)"),
    ("#38ef7d", "linear-gradient(315deg, #11998e, #38ef7d)"),
)

router = APIRouter(prefix=API_PREFIX)


class CardUpdate(BaseModel):
    id: str = ""
    answer: str = ""
    duration: int = 0  # seconds
    user: str = ""


def _set_colors(key: str, set_config: SetConfig) -> tuple[str, str]:
    """(color, background) for a set, stable per set key when not configured."""
    if set_config.color or set_config.background:
        return set_config.color, set_config.background
    digest = hashlib.sha1(key.encode("utf-8")).digest()
    return _PALETTE[digest[0] % len(_PALETTE)]


def set_to_json(key: str, set_config: SetConfig) -> dict[str, str]:
    color, background = _set_colors(key, set_config)
    return {
        "name": key,
        "displayName": set_config.name,
        "description": set_config.description,
        "background": background,
        "color": color,
    }


def card_to_json(card: Card, config: Config) -> dict[str, Any]:
    return {
        "id": card.id,
        "path": card.path,
        "category": card.category,
        "displayName": config.display_name(card.category),
        "questionImg": attachment_data_uri(card.question_path),
        "answerImg": attachment_data_uri(card.answer_path),
        "notes": notes_html(card),
    }


def _store(request: Request) -> Store:
    return request.app.state.store


def _load_set(request: Request, set_name: str) -> CardSet:
    try:
        return _store(request).set(set_name)
    except UnknownSetError as exc:
        raise HTTPException(status_code=400, detail=exc.args[0]) from exc


@router.get("/sets/list")
def sets_list(request: Request) -> list[dict[str, str]]:
    sets = _store(request).sets
    keys = sorted((key for key, value in sets.items() if not value.hidden), key=lambda key: (key != ALL_SET, key))
    return [set_to_json(key, sets[key]) for key in keys]


@router.get("/sets/get")
def sets_get(
    request: Request,
    viewName: str | None = None,
    setName: str = ALL_SET,
    user: str = "",
) -> dict[str, Any]:
    if not viewName:
        raise HTTPException(status_code=400, detail="Please specify a viewName query parameter")
    registry: ViewRegistry = request.app.state.registry
    try:
        view = registry.get(viewName)
    except UnknownViewError as exc:
        raise HTTPException(status_code=400, detail=exc.args[0]) from exc

    card_set = _load_set(request, setName)
    if not card_set:
        raise HTTPException(status_code=400, detail=f"There's no cards left in the '{setName}' set")

    try:
        with request.app.state.lock:
            card = view.next(card_set, user)
    except SamplingError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if card is None:
        raise HTTPException(status_code=400, detail=f"Couldn't get a card from the '{viewName}' view")
    return card_to_json(card, _store(request).config)


@router.get("/sets/stats/heatmap")
def sets_stats_heatmap(request: Request, setName: str = ALL_SET, user: str = "") -> list[dict[str, Any]]:
    card_set = _load_set(request, setName)
    return [
        {"day": day.day, "value": day.value, "perfect": day.perfect, "minor": day.minor, "major": day.major}
        for day in heatmap(card_set, user)
    ]


@router.get("/sets/stats/time")
def sets_stats_time(request: Request, setName: str = ALL_SET, user: str = "") -> dict[str, Any]:
    summary = time_summary(_load_set(request, setName), user)
    return {
        "total": {"count": summary.total_count, "seconds": summary.total_seconds, "mean": summary.mean_seconds()},
        **{
            outcome: {
                "count": summary.counts[outcome],
                "seconds": summary.seconds[outcome],
                "mean": summary.mean_seconds(outcome),
            }
            for outcome in OUTCOMES
        },
    }


@router.get("/sets/stats/difficulties")
def sets_stats_difficulties(request: Request, setName: str = ALL_SET, user: str = "") -> list[dict[str, Any]]:
    card_set = _load_set(request, setName)
    registry: ViewRegistry = request.app.state.registry
    view = registry.get("bayesian") if "bayesian" in registry else None
    if not isinstance(view, BayesianView):
        view = BayesianView()
    config = _store(request).config
    return [
        {
            "path": item.path,
            "displayName": config.display_name(item.path),
            "difficulty": item.mean,
            "alpha": item.alpha,
            "beta": item.beta,
        }
        for item in view.difficulties(card_set, user)
    ]


@router.put("/cards/update")
def cards_update(request: Request, update: CardUpdate) -> dict[str, Any]:
    if not update.id or not update.answer or update.duration <= 0:
        raise HTTPException(status_code=400, detail="Couldn't decode put request: some fields are blank")
    if update.answer not in OUTCOMES:
        raise HTTPException(status_code=400, detail=f"Unsupported answer: {update.answer}")

    completion = Completion(
        date=datetime.now().replace(second=0, microsecond=0),
        duration=timedelta(seconds=update.duration),
        user=update.user,
    )
    try:
        card = _store(request).add_completion(update.id, update.answer, completion)
    except UnknownCardError as exc:
        raise HTTPException(status_code=404, detail=exc.args[0]) from exc
    return {"id": card.id, "path": card.path, "total": card.total_completions()}


@asynccontextmanager
async def lifespan(application: FastAPI):
    state = application.state
    if state.store is None:
        state.store = Store(STORE_PATH, load_config())
    if state.registry is None:
        state.registry = default_registry(
            difficulty_options=state.store.config.difficulty_options,
            bayesian_options=state.store.config.bayesian_options,
        )
    yield


def create_app(
    store: Store | None = None,
    registry: ViewRegistry | None = None,
) -> FastAPI:
    """Build the API. Whatever is not injected is created when the app starts."""
    application = FastAPI(title="Sergeant", lifespan=lifespan)
    application.state.store = store
    application.state.registry = registry
    application.state.lock = threading.Lock()
    application.include_router(router)
    return application


app = create_app()


def main(host: str = "127.0.0.1", port: int = 8000) -> None:
    import uvicorn

    uvicorn.run("sergeant.app:app", host=host, port=port)


if __name__ == "__main__":
    main()
