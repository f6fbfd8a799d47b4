from fastapi import APIRouter, Depends, HTTPException

from ai_attendance.dependencies import Services, bearer_token, get_services, require_session
from ai_attendance.errors import AuthError, ValidationError
from ai_attendance.schemas import LoginIn, Message, RegisterIn, Session, SessionOut

router = APIRouter(
    prefix="/auth",
    tags=["Auth"]
)


def _auth_failure(error: AuthError, status_code: int) -> HTTPException:
    if error.code == "network_failure":
        return HTTPException(status_code=503, detail=error.message)
    return HTTPException(status_code=status_code, detail=error.message)


@router.post("/register", response_model=SessionOut, status_code=201)
def register(form: RegisterIn, services: Services = Depends(get_services)):
    """Create an account; passwords are checked locally before the provider is called."""
    gate = services.identity_factory()
    try:
        session = gate.sign_up(form)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AuthError as e:
        raise _auth_failure(e, 400)
    return SessionOut(**session.model_dump())


@router.post("/login", response_model=SessionOut)
def login(form: LoginIn, services: Services = Depends(get_services)):
    gate = services.identity_factory()
    try:
        session = gate.sign_in(form)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AuthError as e:
        raise _auth_failure(e, 401)
    return SessionOut(**session.model_dump())


@router.post("/logout", response_model=Message)
def logout(
    session: Session = Depends(require_session),
    token: str = Depends(bearer_token),
    services: Services = Depends(get_services),
):
    try:
        services.identity_factory().revoke(token)
    except AuthError as e:
        raise _auth_failure(e, 502)
    return Message(message="Signed out")


@router.get("/me", response_model=SessionOut)
def me(session: Session = Depends(require_session)):
    return SessionOut(user_id=session.user_id, email=session.email, display_name=session.display_name)
