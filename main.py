import logging
import time
import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from analytics import AnalyticsService
from config import get_settings
from database import session_scope
from models import TransactionStatus, User
from periods import local_now, month_start, parse_bound, resolve_range
from repositories import TransactionFilters
from responses import ApiError, failure, no_content, success
from schemas import (
    AuthOut,
    BudgetIn,
    BudgetOut,
    BudgetUpdate,
    GoalIn,
    GoalOut,
    GoalUpdate,
    LoginIn,
    OnboardingIn,
    ProfileIn,
    ProgressIn,
    RegisterIn,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
    TransferIn,
    UserOut,
    WalletIn,
    WalletOut,
    WalletUpdate,
)
from security import InvalidToken, verify_token
from services import (
    AuthenticationFailed,
    AuthService,
    BudgetService,
    GoalService,
    TransactionService,
    WalletService,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

RangePeriod = Literal["7days", "1month", "3months", "6months", "1year"]

app = FastAPI(title="Fity Budget API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_db():
    with session_scope() as db:
        yield db


bearer_scheme = HTTPBearer(auto_error=False)


def current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise ApiError(401, "UNAUTHORIZED", "authorization header required")
    try:
        claims = verify_token(credentials.credentials)
    except InvalidToken as exc:
        raise ApiError(401, "UNAUTHORIZED", str(exc)) from exc
    user = db.get(User, claims.user_id)
    if not user:
        raise ApiError(401, "UNAUTHORIZED", "user no longer exists")
    request.state.user_id = user.id
    return user


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        user_id = getattr(request.state, "user_id", None)
        logger.info(
            f"request: method={request.method} path={request.url.path} "
            f"status={status_code} duration_ms={elapsed_ms:.1f} user={user_id}"
        )


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return failure(exc.status_code, exc.code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return failure(400, "VALIDATION_ERROR", "; ".join(messages) or "invalid request")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
    return failure(exc.status_code, code, str(exc.detail))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return failure(500, "INTERNAL_ERROR", str(exc))


@app.get("/health")
def health():
    return {"status": "ok", "message": "Fity Budget API is running"}


api = APIRouter(prefix="/api/v1")


# Auth


@api.post("/auth/register")
def register(data: RegisterIn, db: Session = Depends(get_db)):
    try:
        user, token = AuthService(db).register(data.name, data.email, data.password)
    except ValueError as exc:
        raise ApiError(400, "REGISTRATION_FAILED", str(exc)) from exc
    return success(
        AuthOut(user=UserOut.model_validate(user), token=token), status_code=201
    )


@api.post("/auth/login")
def login(data: LoginIn, db: Session = Depends(get_db)):
    try:
        user, token = AuthService(db).login(data.email, data.password)
    except AuthenticationFailed as exc:
        raise ApiError(401, "INVALID_CREDENTIALS", str(exc)) from exc
    return success(AuthOut(user=UserOut.model_validate(user), token=token))


@api.get("/auth/me")
def me(user: User = Depends(current_user)):
    return success({"user": UserOut.model_validate(user)})


@api.put("/auth/profile")
def update_profile(
    data: ProfileIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        updated = AuthService(db).update_profile(user.id, data.name, data.email)
    except ValueError as exc:
        raise ApiError(400, "UPDATE_FAILED", str(exc)) from exc
    return success({"user": UserOut.model_validate(updated)})


@api.post("/auth/onboarding")
def complete_onboarding(
    data: OnboardingIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        updated = AuthService(db).complete_onboarding(
            user.id, data.monthly_income, data.currency, data.financial_goals
        )
    except ValueError as exc:
        raise ApiError(400, "ONBOARDING_FAILED", str(exc)) from exc
    return success(
        {
            "message": "Onboarding completed successfully",
            "user": UserOut.model_validate(updated),
        }
    )


# Wallets


@api.get("/wallets")
def list_wallets(user: User = Depends(current_user), db: Session = Depends(get_db)):
    wallets = WalletService(db, user.id).list()
    return success({"wallets": [WalletOut.model_validate(w) for w in wallets]})


@api.post("/wallets")
def create_wallet(
    data: WalletIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    try:
        wallet = WalletService(db, user.id).create(data)
    except ValueError as exc:
        raise ApiError(400, "CREATE_FAILED", str(exc)) from exc
    return success({"wallet": WalletOut.model_validate(wallet)}, status_code=201)


@api.get("/wallets/default")
def get_default_wallet(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    try:
        wallet = WalletService(db, user.id).get_default()
    except ValueError as exc:
        raise ApiError(404, "NOT_FOUND", str(exc)) from exc
    return success({"wallet": WalletOut.model_validate(wallet)})


@api.post("/wallets/transfer")
def transfer_between_wallets(
    data: TransferIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    try:
        source, destination = WalletService(db, user.id).transfer(
            data.from_wallet_id, data.to_wallet_id, data.amount
        )
    except ValueError as exc:
        raise ApiError(400, "TRANSFER_FAILED", str(exc)) from exc
    return success(
        {
            "from_wallet": WalletOut.model_validate(source),
            "to_wallet": WalletOut.model_validate(destination),
        }
    )


@api.get("/wallets/{wallet_id}")
def get_wallet(
    wallet_id: uuid.UUID, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    try:
        wallet = WalletService(db, user.id).get(wallet_id)
    except ValueError as exc:
        raise ApiError(404, "NOT_FOUND", str(exc)) from exc
    return success({"wallet": WalletOut.model_validate(wallet)})


@api.put("/wallets/{wallet_id}")
def update_wallet(
    wallet_id: uuid.UUID,
    data: WalletUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        wallet = WalletService(db, user.id).update(wallet_id, data)
    except ValueError as exc:
        raise ApiError(400, "UPDATE_FAILED", str(exc)) from exc
    return success({"wallet": WalletOut.model_validate(wallet)})


@api.delete("/wallets/{wallet_id}")
def delete_wallet(
    wallet_id: uuid.UUID, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    try:
        WalletService(db, user.id).delete(wallet_id)
    except ValueError as exc:
        raise ApiError(400, "DELETE_FAILED", str(exc)) from exc
    return no_content()


@api.post("/wallets/{wallet_id}/default")
def set_default_wallet(
    wallet_id: uuid.UUID, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    try:
        wallet = WalletService(db, user.id).set_default(wallet_id)
    except ValueError as exc:
        raise ApiError(400, "SET_DEFAULT_FAILED", str(exc)) from exc
    return success({"wallet": WalletOut.model_validate(wallet)})


# Transactions


def _window(start: Optional[str], end: Optional[str]):
    try:
        return parse_bound(start), parse_bound(end, end=True)
    except ValueError as exc:
        raise ApiError(400, "VALIDATION_ERROR", f"invalid date: {exc}") from exc


@api.get("/transactions")
def list_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category: Optional[str] = None,
    status: Optional[TransactionStatus] = None,
    wallet_id: Optional[uuid.UUID] = None,
    q: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    window_start, window_end = _window(start, end)
    filters = TransactionFilters(
        category=category,
        status=status,
        wallet_id=wallet_id,
        query=q,
        start=window_start,
        end=window_end,
    )
    result = TransactionService(db, user.id).list_with_count(
        limit=limit, offset=(page - 1) * limit, filters=filters
    )
    return success(
        {
            "transactions": [TransactionOut.model_validate(t) for t in result.items],
            "pagination": {
                "page": result.page,
                "limit": result.limit,
                "total": result.total,
                "total_pages": result.total_pages,
                "has_next": result.has_next,
                "has_prev": result.has_prev,
            },
        }
    )


@api.post("/transactions")
def create_transaction(
    data: TransactionIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    try:
        txn = TransactionService(db, user.id).create(data)
    except ValueError as exc:
        raise ApiError(400, "CREATE_FAILED", str(exc)) from exc
    return success({"transaction": TransactionOut.model_validate(txn)}, status_code=201)


@api.get("/transactions/stats")
def transaction_stats(
    start: Optional[str] = None,
    end: Optional[str] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    window_start, window_end = _window(start, end)
    now = local_now()
    stats = TransactionService(db, user.id).stats(
        window_start or month_start(now), window_end or now
    )
    return success({"stats": stats})


@api.get("/transactions/{transaction_id}")
def get_transaction(
    transaction_id: uuid.UUID,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user.id).get(transaction_id)
    except ValueError as exc:
        raise ApiError(404, "NOT_FOUND", str(exc)) from exc
    return success({"transaction": TransactionOut.model_validate(txn)})


@api.put("/transactions/{transaction_id}")
def update_transaction(
    transaction_id: uuid.UUID,
    data: TransactionUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user.id).update(transaction_id, data)
    except ValueError as exc:
        raise ApiError(400, "UPDATE_FAILED", str(exc)) from exc
    return success({"transaction": TransactionOut.model_validate(txn)})


@api.delete("/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: uuid.UUID,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        TransactionService(db, user.id).delete(transaction_id)
    except ValueError as exc:
        raise ApiError(400, "DELETE_FAILED", str(exc)) from exc
    return no_content()


# Goals


@api.get("/goals")
def list_goals(user: User = Depends(current_user), db: Session = Depends(get_db)):
    goals = GoalService(db, user.id).list()
    return success({"goals": [GoalOut.model_validate(g) for g in goals]})


@api.post("/goals")
def create_goal(
    data: GoalIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    try:
        goal = GoalService(db, user.id).create(data)
    except ValueError as exc:
        raise ApiError(400, "CREATE_FAILED", str(exc)) from exc
    return success({"goal": GoalOut.model_validate(goal)}, status_code=201)


@api.get("/goals/summary")
def goals_summary(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return success({"summary": GoalService(db, user.id).progress_summary()})


@api.get("/goals/{goal_id}")
def get_goal(
    goal_id: uuid.UUID, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    try:
        goal = GoalService(db, user.id).get(goal_id)
    except ValueError as exc:
        raise ApiError(404, "NOT_FOUND", str(exc)) from exc
    return success({"goal": GoalOut.model_validate(goal)})


@api.put("/goals/{goal_id}")
def update_goal(
    goal_id: uuid.UUID,
    data: GoalUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        goal = GoalService(db, user.id).update(goal_id, data)
    except ValueError as exc:
        raise ApiError(400, "UPDATE_FAILED", str(exc)) from exc
    return success({"goal": GoalOut.model_validate(goal)})


@api.patch("/goals/{goal_id}/progress")
def add_goal_progress(
    goal_id: uuid.UUID,
    data: ProgressIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        goal = GoalService(db, user.id).add_progress(goal_id, data.amount)
    except ValueError as exc:
        raise ApiError(400, "UPDATE_PROGRESS_FAILED", str(exc)) from exc
    return success({"goal": GoalOut.model_validate(goal)})


@api.delete("/goals/{goal_id}")
def delete_goal(
    goal_id: uuid.UUID, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    try:
        GoalService(db, user.id).delete(goal_id)
    except ValueError as exc:
        raise ApiError(400, "DELETE_FAILED", str(exc)) from exc
    return no_content()


# Budgets


@api.get("/budgets")
def list_budgets(user: User = Depends(current_user), db: Session = Depends(get_db)):
    budgets = BudgetService(db, user.id).list()
    return success({"budgets": [BudgetOut.model_validate(b) for b in budgets]})


@api.post("/budgets")
def create_budget(
    data: BudgetIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    try:
        budget = BudgetService(db, user.id).create(data)
    except ValueError as exc:
        raise ApiError(400, "CREATE_FAILED", str(exc)) from exc
    return success({"budget": BudgetOut.model_validate(budget)}, status_code=201)


@api.get("/budgets/summary")
def budgets_summary(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return success({"summary": BudgetService(db, user.id).summary()})


@api.get("/budgets/status")
def budgets_status(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return success({"statuses": BudgetService(db, user.id).check_status()})


@api.get("/budgets/{budget_id}")
def get_budget(
    budget_id: uuid.UUID, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    try:
        budget = BudgetService(db, user.id).get(budget_id)
    except ValueError as exc:
        raise ApiError(404, "NOT_FOUND", str(exc)) from exc
    return success({"budget": BudgetOut.model_validate(budget)})


@api.put("/budgets/{budget_id}")
def update_budget(
    budget_id: uuid.UUID,
    data: BudgetUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        budget = BudgetService(db, user.id).update(budget_id, data)
    except ValueError as exc:
        raise ApiError(400, "UPDATE_FAILED", str(exc)) from exc
    return success({"budget": BudgetOut.model_validate(budget)})


@api.delete("/budgets/{budget_id}")
def delete_budget(
    budget_id: uuid.UUID, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    try:
        BudgetService(db, user.id).delete(budget_id)
    except ValueError as exc:
        raise ApiError(400, "DELETE_FAILED", str(exc)) from exc
    return no_content()


# Analytics


@api.get("/analytics/dashboard")
def analytics_dashboard(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return success({"dashboard": AnalyticsService(db, user.id).dashboard_summary()})


@api.get("/analytics/money-flow")
def analytics_money_flow(
    period: RangePeriod = "6months",
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    service = AnalyticsService(db, user.id)
    if period == "7days":
        report = service.income_vs_expense("week")
    elif period == "1month":
        report = service.income_vs_expense("month")
    else:
        months = {"3months": 3, "6months": 6, "1year": 12}[period]
        report = service.monthly_trends(months)
    return success({"period": period, "data": report})


@api.get("/analytics/spending")
def analytics_spending(
    period: RangePeriod = "1month",
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    window = resolve_range(period)
    categories = AnalyticsService(db, user.id).spending_by_category(
        window.start, window.end
    )
    return success(
        {
            "period": period,
            "total_spending": sum(c.amount for c in categories),
            "by_category": categories,
        }
    )


@api.get("/analytics/insights")
def analytics_insights(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return success(AnalyticsService(db, user.id).insights())


@api.get("/analytics/trends")
def analytics_trends(
    months: int = Query(6, ge=1, le=24),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return success({"trends": AnalyticsService(db, user.id).monthly_trends(months)})


@api.get("/analytics/health")
def analytics_health(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return success({"health_score": AnalyticsService(db, user.id).financial_health()})


app.include_router(api)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
