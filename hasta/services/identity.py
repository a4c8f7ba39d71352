"""
Identity resolution.

Anonymous and signed-in sessions are distinct principals with distinct
ids. When a shopper signs in after browsing anonymously, the anonymous
cart is folded into the permanent one by an explicit merge transaction.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hasta.config import Settings
from hasta.errors import InputRejected, NotAuthenticated, Forbidden
from hasta.models import CartLine, Role, User
from hasta.security import hash_password, verify_password
from hasta.store import commit

logger = logging.getLogger(__name__)


# =====================================================
# SESSIONS
# =====================================================

def create_anonymous_user(db: Session) -> User:
    user = User(role=Role.user.value, is_anonymous=True, is_active=True)
    db.add(user)
    commit(db, "identity.create_anonymous")
    db.refresh(user)
    logger.info("Anonymous session issued | user_id=%s", user.id)
    return user


def register_user(db: Session, email: str, password: str, full_name=None, phone=None) -> User:
    email = email.lower()
    if db.query(User).filter(User.email == email).first():
        raise InputRejected("Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(password),
        full_name=full_name,
        phone=phone,
        role=Role.user.value,
        is_anonymous=False,
        is_active=True,
    )
    db.add(user)
    commit(db, "identity.register", email=email)
    db.refresh(user)
    logger.info("Account created | user_id=%s", user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email.lower()).first()

    if not user or not verify_password(password, user.password_hash):
        raise NotAuthenticated("Invalid email or password")

    if not user.is_active:
        raise Forbidden("User disabled")

    return user


# =====================================================
# CART MERGE
# =====================================================

def merge_carts(db: Session, anonymous_id: str, permanent_id: str) -> int:
    """
    Fold the anonymous cart into the permanent cart in one transaction.

    Lines sharing (product_id, selected_size) have their quantities summed
    into the permanent line; other anonymous lines are copied over whole.
    Every anonymous line is deleted. Raises on failure with nothing applied.
    """
    if anonymous_id == permanent_id:
        return 0

    anon_lines = db.query(CartLine).filter(CartLine.user_id == anonymous_id).all()
    if not anon_lines:
        return 0

    permanent_lines = {
        (line.product_id, line.selected_size): line
        for line in db.query(CartLine).filter(CartLine.user_id == permanent_id).all()
    }

    try:
        for anon in anon_lines:
            key = (anon.product_id, anon.selected_size)
            target = permanent_lines.get(key)
            if target is not None:
                target.quantity += anon.quantity
            else:
                copied = CartLine(
                    user_id=permanent_id,
                    product_id=anon.product_id,
                    selected_size=anon.selected_size,
                    quantity=anon.quantity,
                )
                db.add(copied)
                permanent_lines[key] = copied
            db.delete(anon)

        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Cart merge failed | anonymous_id=%s | permanent_id=%s",
            anonymous_id,
            permanent_id,
        )
        raise

    logger.info(
        "Cart merged | anonymous_id=%s | permanent_id=%s | lines=%s",
        anonymous_id,
        permanent_id,
        len(anon_lines),
    )
    return len(anon_lines)


# =====================================================
# ADMIN BOOTSTRAP (RUNS ON STARTUP)
# =====================================================

def ensure_admin_exists(db: Session, settings: Settings) -> None:
    """
    Admin credentials come only from the environment.
    Safe and idempotent on every startup.
    """
    if not settings.admin_email or not settings.admin_password:
        logger.warning("ADMIN_EMAIL or ADMIN_PASSWORD not set, admin bootstrap skipped")
        return

    email = settings.admin_email.lower()
    admin = db.query(User).filter(User.email == email).first()

    if admin:
        if not admin.is_admin:
            admin.role = Role.admin.value
            commit(db, "identity.promote_admin", email=email)
            logger.warning("Existing user upgraded to admin | user_id=%s", admin.id)
        return

    db.add(User(
        email=email,
        password_hash=hash_password(settings.admin_password),
        role=Role.admin.value,
        is_anonymous=False,
        is_active=True,
    ))
    commit(db, "identity.create_admin", email=email)
    logger.info("Admin user created from environment variables")
