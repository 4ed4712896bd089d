from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import require_entitled, require_main_app
from app.db.session import get_db
from app.schemas.store import StoreOut, StoreSetupIn
from app.services.audit import audit
from app.services.onboarding import OnboardingState, RoutingDecision
from app.services.stores import StoreAlreadyExists, create_store, get_store

router = APIRouter()


@router.post("", response_model=StoreOut)
def setup_store(
    payload: StoreSetupIn,
    decision: RoutingDecision = Depends(require_entitled),
    db: Session = Depends(get_db),
):
    if decision.state is OnboardingState.SESSION_ENTITLED_WITH_STORE:
        raise HTTPException(409, "Store already set up for this account")
    try:
        row = create_store(
            db,
            user_id=decision.user_id,
            name=payload.name,
            address=payload.address,
            phone=payload.phone,
            image_url=payload.image_url,
        )
    except StoreAlreadyExists as exc:
        raise HTTPException(409, str(exc))
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    audit(db, decision.user_id, "store", row["id"], "store_created", {"name": row["name"]})
    db.commit()
    return StoreOut(**row)


@router.get("/me", response_model=StoreOut)
def my_store(decision: RoutingDecision = Depends(require_main_app), db: Session = Depends(get_db)):
    row = get_store(db, decision.user_id)
    db.commit()
    if not row:
        raise HTTPException(404, "Store not found")
    return StoreOut(**row)
