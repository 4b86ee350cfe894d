"""FastAPI surface over the venue."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from predvenue.api.schemas import (
    AccountResponse,
    ActionResponse,
    BetRequest,
    ErrorResponse,
    HealthResponse,
    MarketDetailResponse,
    MarketsListResponse,
    MarketView,
    OutcomeView,
    SimulationResponse,
    TopUpRequest,
    TradeItem,
)
from predvenue.config import get_settings
from predvenue.config.settings import Settings, configure_logging
from predvenue.models.market import Market
from predvenue.pricing.lmsr import market_b, probabilities
from predvenue.pricing.policy import bet_cap, price_from_probability
from predvenue.trading.coordinator import DispatchResult
from predvenue.trading.errors import ErrorCode
from predvenue.venue.manager import VenueManager

# Set by run_api() (or tests) before the app starts.
_config_profile: str | None = None
_settings_override: Settings | None = None
_simulate_on_start = False

_STATUS_BY_CODE = {
    ErrorCode.AUTH_REQUIRED.value: 401,
    ErrorCode.UNKNOWN_MARKET.value: 404,
    ErrorCode.UNKNOWN_POSITION.value: 404,
    ErrorCode.COOLDOWN.value: 429,
    ErrorCode.NOT_SYNCED.value: 409,
    ErrorCode.WRITE_FAILED.value: 409,
    ErrorCode.CLOSE_FAILED.value: 409,
}


def set_settings(settings: Settings | None) -> None:
    """Use explicit settings instead of loading the config profile."""
    global _settings_override
    _settings_override = settings


def _get_settings() -> Settings:
    return _settings_override if _settings_override is not None else get_settings(_config_profile)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = _get_settings()
    configure_logging(settings)
    venue = VenueManager(settings)
    venue.hydrate()
    app.state.venue = venue
    if _simulate_on_start:
        venue.start_simulation()
    yield
    await venue.close()


app = FastAPI(title="PredVenue API", version="0.1.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


def _error_json(code: str, message: str, status_code: int = 404) -> JSONResponse:
    """Return consistent error JSON: { detail, code }."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code},
    )


def _venue(request: Request) -> VenueManager:
    return request.app.state.venue


def _market_view(market: Market) -> dict[str, Any]:
    probs = probabilities(market)
    return {
        "id": market.id,
        "sport": market.sport,
        "league": market.league,
        "home_team": market.home_team,
        "away_team": market.away_team,
        "start_time": market.start_time,
        "liquidity": market.liquidity,
        "b": market_b(market),
        "max_bet": bet_cap(market),
        "outcomes": [
            OutcomeView(
                id=o.id,
                label=o.label,
                pool=o.pool,
                probability=probs[o.id],
                price=price_from_probability(probs[o.id]),
            )
            for o in market.outcomes
        ],
    }


def _action_response(venue: VenueManager, result: DispatchResult) -> ActionResponse | JSONResponse:
    if not result.accepted:
        code = result.code or "rejected"
        return _error_json(code, result.message or "Rejected", _STATUS_BY_CODE.get(code, 400))
    return ActionResponse(
        accepted=True,
        message=venue.state.last_message,
        balance=venue.state.account.balance,
        pending_confirms=venue.reconciler.in_flight,
    )


async def _settle_or_error(venue: VenueManager, result: DispatchResult) -> ActionResponse | JSONResponse:
    """Wait for this action's confirm and surface its own failure, if any."""
    await venue.settle()
    outcome = venue.reconciler.pop_outcome(result.action_id)
    if outcome is not None and not outcome.accepted:
        return _action_response(venue, outcome)
    return _action_response(venue, result)


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/markets", response_model=MarketsListResponse)
def markets_list(request: Request) -> MarketsListResponse:
    venue = _venue(request)
    markets = [MarketView(**_market_view(m)) for m in venue.markets()]
    return MarketsListResponse(
        markets=markets, total=len(markets), selected_market_id=venue.state.selected_market_id
    )


@app.get(
    "/markets/{market_id}",
    response_model=MarketDetailResponse,
    responses={404: {"description": "Market not found", "model": ErrorResponse}},
)
def market_detail(request: Request, market_id: str):
    """Market with live prices and its bounded probability history."""
    market = _venue(request).market(market_id)
    if market is None:
        return _error_json("not_found", f"Market not found: {market_id}")
    return MarketDetailResponse(**_market_view(market), history=list(market.history))


def _account_response(venue: VenueManager) -> AccountResponse:
    return AccountResponse(
        user_id=venue.state.account.id,
        balance=venue.state.account.balance,
        positions=venue.positions(),
        last_message=venue.state.last_message,
    )


@app.get("/account", response_model=AccountResponse)
def account(request: Request) -> AccountResponse:
    return _account_response(_venue(request))


@app.post("/account/top-up", response_model=AccountResponse)
async def top_up(request: Request, body: TopUpRequest) -> AccountResponse:
    venue = _venue(request)
    venue.top_up(body.amount)
    return _account_response(venue)


@app.post(
    "/bets",
    response_model=ActionResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
)
async def place_bet(
    request: Request,
    body: BetRequest,
    wait: bool = Query(False, description="Wait for the store to confirm before responding"),
):
    """Apply a bet optimistically; the store confirms in the background unless wait=true."""
    venue = _venue(request)
    result = venue.place_bet(body.market_id, body.outcome_id, body.amount)
    if result.accepted and wait:
        return await _settle_or_error(venue, result)
    return _action_response(venue, result)


@app.post(
    "/positions/{position_id}/close",
    response_model=ActionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def close_position(
    request: Request,
    position_id: str,
    wait: bool = Query(False, description="Wait for the store to confirm before responding"),
):
    venue = _venue(request)
    result = venue.close_position(position_id)
    if result.accepted and wait:
        return await _settle_or_error(venue, result)
    return _action_response(venue, result)


@app.get("/trades", response_model=list[TradeItem])
async def trades_list(
    request: Request,
    market_id: str | None = Query(None),
    mine: bool = Query(True, description="Only the local user's trades"),
    limit: int = Query(50, ge=1, le=500),
) -> list[TradeItem]:
    venue = _venue(request)
    rows = venue.store.list_trades(
        user_id=venue.user_id if mine else None, market_id=market_id, limit=limit
    )
    return [TradeItem(**r) for r in rows]


def _simulation_response(venue: VenueManager) -> SimulationResponse:
    sim = venue.state.simulation
    stats = venue.driver.stats
    return SimulationResponse(
        status=sim.status,
        controller_id=sim.controller_id,
        interval_ms=sim.interval_ms,
        ticks=stats.ticks,
        shocks=stats.shocks,
        dispatched=stats.dispatched,
        rejected=stats.rejected,
        by_style=dict(stats.by_style),
    )


@app.get("/simulation", response_model=SimulationResponse)
def simulation_status(request: Request) -> SimulationResponse:
    return _simulation_response(_venue(request))


@app.post("/simulation/start", response_model=SimulationResponse)
async def simulation_start(request: Request) -> SimulationResponse:
    venue = _venue(request)
    venue.start_simulation()
    return _simulation_response(venue)


@app.post("/simulation/stop", response_model=SimulationResponse)
async def simulation_stop(request: Request) -> SimulationResponse:
    venue = _venue(request)
    await venue.stop_simulation()
    await venue.settle()
    return _simulation_response(venue)


def run_api(
    host: str = "127.0.0.1",
    port: int = 8000,
    profile: str | None = None,
    settings: Settings | None = None,
    simulate: bool = False,
) -> None:
    global _config_profile, _simulate_on_start
    _config_profile = profile
    _simulate_on_start = simulate
    if settings is not None:
        set_settings(settings)
    import uvicorn

    uvicorn.run("predvenue.api.main:app", host=host, port=port, reload=False)
