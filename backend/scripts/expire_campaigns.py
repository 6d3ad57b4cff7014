from app.core.config import settings
from app.core.logging import configure_logging
from app.core.security import now_utc
from app.db.session import build_engine, build_session_factory
from app.services.entitlement_store import SqlEntitlementStore


def main():
    configure_logging()
    engine = build_engine(settings)
    db = build_session_factory(engine)()
    try:
        expired = SqlEntitlementStore(db).expire_lapsed_campaigns(now_utc(), limit=500)
        db.commit()
        print(f"ok: expired lapsed campaigns (expired={expired})")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
        engine.dispose()


if __name__ == "__main__":
    main()
