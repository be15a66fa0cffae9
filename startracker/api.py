from functools import lru_cache
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import configure_logging, get_settings
from .container import Services, build_services
from .errors import (
    ConflictError,
    ImportValidationError,
    InsufficientBalanceError,
    InvalidInputError,
    NotFoundError,
    UserNotFoundError,
)
from .models import (
    AwardRequest,
    AwardResponse,
    ImportMode,
    ImportReport,
    Reason,
    ReasonRequest,
    RedeemRequest,
    RedeemResponse,
    Redemption,
    Reward,
    RewardRequest,
    Star,
    TranslationRequest,
    User,
    UserBalance,
    ValueUpdateRequest,
)

app = FastAPI(
    title="Star Tracker API",
    description="Star awards, reward redemptions and balances with translated display text",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache()
def get_services() -> Services:
    settings = get_settings()
    configure_logging(settings.log_level)
    return build_services(settings)


def get_lang(lang: Optional[str] = None) -> str:
    return lang or get_settings().default_lang


def get_acting_user(
    x_acting_user: Optional[str] = Header(default=None), services: Services = Depends(get_services)
) -> Optional[User]:
    """Identity supplied by the authentication layer in front of this app; None means system/API."""
    if not x_acting_user:
        return None
    try:
        return services.users.get_user_by_username(x_acting_user)
    except UserNotFoundError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unknown acting user")


def require_admin(user: Optional[User] = Depends(get_acting_user)) -> User:
    if user is None or not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin required")
    return user


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "star-tracker"}


@app.get("/users", response_model=list[UserBalance], tags=["Users"])
def list_users(lang: str = Depends(get_lang), services: Services = Depends(get_services)) -> list[UserBalance]:
    return services.ledger.user_balances(lang)


@app.get("/users/{username}/balance", response_model=UserBalance, tags=["Users"])
def get_user_balance(
    username: str, lang: str = Depends(get_lang), services: Services = Depends(get_services)
) -> UserBalance:
    user = services.users.get_user_by_username(username)
    return services.ledger.get_balance(user.id, lang)


@app.put("/users/{username}/translations", tags=["Users"])
def set_user_translation(
    username: str,
    request: TranslationRequest,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services),
):
    user = services.users.get_user_by_username(username)
    services.users.set_display_name(user.id, request.lang, request.text)
    return {"status": "ok"}


@app.post("/stars", response_model=AwardResponse, status_code=status.HTTP_201_CREATED, tags=["Stars"])
def award_star(
    request: AwardRequest,
    lang: str = Depends(get_lang),
    acting: Optional[User] = Depends(get_acting_user),
    services: Services = Depends(get_services),
) -> AwardResponse:
    if acting is not None and request.username == acting.username:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="cannot award stars to yourself")
    try:
        star = services.ledger.record_award(
            request.username,
            reason_id=request.reason_id,
            reason_text=request.reason,
            stars=request.stars,
            awarded_by=acting.id if acting else None,
            lang=lang,
        )
    except (UserNotFoundError, InvalidInputError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return AwardResponse(
        star=star,
        balances=services.ledger.user_balances(lang),
        awarded_by=acting.username if acting else None,
    )


@app.get("/stars", response_model=list[Star], tags=["Stars"])
def list_stars(
    user: Optional[str] = None, lang: str = Depends(get_lang), services: Services = Depends(get_services)
) -> list[Star]:
    return services.ledger.list_awards(user, lang)


@app.delete("/stars/{star_id}", response_model=list[UserBalance], tags=["Stars"])
def delete_star(
    star_id: int,
    lang: str = Depends(get_lang),
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services),
) -> list[UserBalance]:
    services.ledger.delete_award(star_id)
    return services.ledger.user_balances(lang)


@app.post("/redeem", response_model=RedeemResponse, status_code=status.HTTP_201_CREATED, tags=["Redemptions"])
def redeem_reward(
    request: RedeemRequest,
    lang: str = Depends(get_lang),
    services: Services = Depends(get_services),
) -> RedeemResponse:
    try:
        redemption = services.ledger.redeem(request.username, request.reward_id, lang)
    except InsufficientBalanceError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(e), "balance": e.balance, "cost": e.cost},
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return RedeemResponse(redemption=redemption, balances=services.ledger.user_balances(lang))


@app.get("/redemptions", response_model=list[Redemption], tags=["Redemptions"])
def list_redemptions(
    limit: int = 50,
    user_id: Optional[int] = None,
    lang: str = Depends(get_lang),
    services: Services = Depends(get_services),
) -> list[Redemption]:
    return services.ledger.list_redemptions(limit, user_id, lang)


@app.delete("/redemptions/{redemption_id}", response_model=list[UserBalance], tags=["Redemptions"])
def delete_redemption(
    redemption_id: int,
    lang: str = Depends(get_lang),
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services),
) -> list[UserBalance]:
    services.ledger.delete_redemption(redemption_id)
    return services.ledger.user_balances(lang)


@app.get("/reasons", response_model=list[Reason], tags=["Catalog"])
def list_reasons(services: Services = Depends(get_services)) -> list[Reason]:
    return services.catalog.list_reasons()


@app.post("/reasons", response_model=Reason, status_code=status.HTTP_201_CREATED, tags=["Catalog"])
def create_reason(
    request: ReasonRequest, admin: User = Depends(require_admin), services: Services = Depends(get_services)
) -> Reason:
    return services.catalog.create_reason(request.text, request.stars)


@app.put("/reasons/{reason_id}/translations", tags=["Catalog"])
def set_reason_translation(
    reason_id: int,
    request: TranslationRequest,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services),
):
    services.catalog.set_reason_translation(reason_id, request.lang, request.text)
    return {"status": "ok"}


@app.put("/reasons/{reason_id}/stars", response_model=Reason, tags=["Catalog"])
def set_reason_stars(
    reason_id: int,
    request: ValueUpdateRequest,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services),
) -> Reason:
    return services.catalog.set_reason_stars(reason_id, request.value, request.retroactive)


@app.delete("/reasons/{reason_id}", tags=["Catalog"])
def delete_reason(
    reason_id: int, admin: User = Depends(require_admin), services: Services = Depends(get_services)
):
    services.catalog.delete_reason(reason_id)
    return {"status": "ok"}


@app.get("/rewards", response_model=list[Reward], tags=["Catalog"])
def list_rewards(services: Services = Depends(get_services)) -> list[Reward]:
    return services.catalog.list_rewards()


@app.post("/rewards", response_model=Reward, status_code=status.HTTP_201_CREATED, tags=["Catalog"])
def create_reward(
    request: RewardRequest, admin: User = Depends(require_admin), services: Services = Depends(get_services)
) -> Reward:
    return services.catalog.create_reward(request.name, request.cost, request.icon, request.adult_only)


@app.put("/rewards/{reward_id}", response_model=Reward, tags=["Catalog"])
def update_reward(
    reward_id: int,
    request: RewardRequest,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services),
) -> Reward:
    return services.catalog.update_reward(
        reward_id, request.name, request.cost, request.icon, adult_only=request.adult_only
    )


@app.put("/rewards/{reward_id}/translations", tags=["Catalog"])
def set_reward_translation(
    reward_id: int,
    request: TranslationRequest,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services),
):
    services.catalog.set_reward_translation(reward_id, request.lang, request.text)
    return {"status": "ok"}


@app.put("/rewards/{reward_id}/cost", response_model=Reward, tags=["Catalog"])
def set_reward_cost(
    reward_id: int,
    request: ValueUpdateRequest,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services),
) -> Reward:
    return services.catalog.set_reward_cost(reward_id, request.value, request.retroactive)


@app.delete("/rewards/{reward_id}", tags=["Catalog"])
def delete_reward(
    reward_id: int, admin: User = Depends(require_admin), services: Services = Depends(get_services)
):
    services.catalog.delete_reward(reward_id)
    return {"status": "ok"}


@app.get("/admin/export", tags=["Admin"])
def export_data(admin: User = Depends(require_admin), services: Services = Depends(get_services)):
    return services.transfer.export_all().model_dump(mode="json")


@app.post("/admin/import", response_model=ImportReport, tags=["Admin"])
def import_data(
    document: dict[str, Any],
    mode: ImportMode = ImportMode.BEST_EFFORT,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services),
) -> ImportReport:
    try:
        return services.transfer.import_all(document, mode)
    except ImportValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail={"message": str(e), "problems": e.problems}
        )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
