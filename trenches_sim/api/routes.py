from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from trenches_sim.engine.candles import parse_timeframe
from trenches_sim.engine.market import get_candles, get_token, list_tokens
from trenches_sim.engine.tokens import Token, TokenStatus
from trenches_sim.schemas import BuyRequest, SellRequest
from trenches_sim.services.errors import TradeRejected
from trenches_sim.services.session import GameSession
from trenches_sim.utils.json_safety import sanitize_floats


router = APIRouter()


def get_session(request: Request) -> GameSession:
    return request.app.state.session


def _token_summary(token: Token) -> dict:
    ps = token.price_state
    return {
        "id": token.id,
        "name": token.name,
        "ticker": token.ticker,
        "avatar": token.avatar,
        "status": token.status.value,
        "price": ps.price,
        "phase": ps.phase.value,
        "volume": ps.volume,
        "liquidity": token.liquidity,
        "market_cap": token.market_cap,
        "created_at": token.created_at,
        "migrated_at": token.migrated_at,
        "price_history": list(token.price_history),
    }


def _trade_error(e: TradeRejected) -> HTTPException:
    status_code = 404 if e.code == "UNKNOWN_TOKEN" else 400
    return HTTPException(status_code=status_code, detail=e.to_dict())


def _portfolio_view(session: GameSession) -> dict:
    p = session.portfolio
    return {
        "balance": p.balance,
        "realized_pnl": p.realized_pnl,
        "unrealized_pnl": p.unrealized_pnl,
        "last_claim_time": p.last_claim_time,
        "positions": [pos.model_dump() for pos in p.positions.values()],
        "trade_history": [t.model_dump() for t in p.trade_history],
    }


@router.get("/health")
async def health(session: GameSession = Depends(get_session)):
    return {"status": "ok", "tick_count": session.state.tick_count, "tokens": len(session.state.tokens)}


@router.get("/tokens")
async def api_tokens(status: Optional[TokenStatus] = None, session: GameSession = Depends(get_session)):
    tokens = list_tokens(session.state, status)
    tokens.sort(key=lambda t: t.created_at, reverse=True)
    return sanitize_floats([_token_summary(t) for t in tokens])


@router.get("/tokens/{token_id}")
async def api_token(token_id: str, session: GameSession = Depends(get_session)):
    token = get_token(session.state, token_id)
    if token is None:
        raise HTTPException(status_code=404, detail=f"Unknown token {token_id}")
    return sanitize_floats(_token_summary(token))


@router.get("/tokens/{token_id}/candles")
async def api_candles(token_id: str, timeframe: str = "5s", session: GameSession = Depends(get_session)):
    try:
        tf = parse_timeframe(timeframe)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if get_token(session.state, token_id) is None:
        raise HTTPException(status_code=404, detail=f"Unknown token {token_id}")
    candles = get_candles(session.state, token_id, tf)
    return sanitize_floats({
        "token_id": token_id,
        "timeframe": tf.value,
        "candles": [c.model_dump() for c in candles],
    })


@router.get("/events")
async def api_events(limit: int = 50, session: GameSession = Depends(get_session)):
    events = session.state.events[-limit:] if limit > 0 else ()
    return [e.model_dump(mode="json") for e in events]


@router.get("/portfolio")
async def api_portfolio(session: GameSession = Depends(get_session)):
    return sanitize_floats(_portfolio_view(session))


@router.post("/portfolio/claim")
async def api_claim(session: GameSession = Depends(get_session)):
    try:
        balance = session.claim()
    except TradeRejected as e:
        raise _trade_error(e)
    return {"balance": balance}


@router.post("/trade/buy")
async def api_buy(data: BuyRequest, session: GameSession = Depends(get_session)):
    try:
        position = session.buy(data.token_id, data.amount_sol)
    except TradeRejected as e:
        raise _trade_error(e)
    return sanitize_floats({"position": position.model_dump(), "balance": session.portfolio.balance})


@router.post("/trade/sell")
async def api_sell(data: SellRequest, session: GameSession = Depends(get_session)):
    try:
        result = session.sell(data.token_id, data.percent)
    except TradeRejected as e:
        raise _trade_error(e)
    return sanitize_floats({**result.model_dump(), "balance": session.portfolio.balance})


@router.get("/quests")
async def api_quests(session: GameSession = Depends(get_session)):
    book = session.quests
    return {
        "completed_count": book.completed_count,
        "quests": [q.model_dump() for q in book.quests],
        "stats": book.stats.model_dump(),
    }
