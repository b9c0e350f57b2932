import os

from gestao_acoes.db import models
from gestao_acoes.db.init_db import ensure_missing_columns
from gestao_acoes.db.session import SessionLocal, engine
from gestao_acoes.services.provisioning import create_admin_user, create_master_user


def main() -> None:
    models.Base.metadata.create_all(bind=engine)
    ensure_missing_columns(engine)

    email = os.getenv("MASTER_BOOTSTRAP_EMAIL")
    db = SessionLocal()
    try:
        if email:
            result = create_master_user(
                db,
                email,
                os.getenv("MASTER_BOOTSTRAP_PASSWORD", ""),
                os.getenv("MASTER_BOOTSTRAP_NAME", "Administrador Master"),
                os.getenv("MASTER_BOOTSTRAP_CPF", ""),
            )
        else:
            result = create_admin_user(db)
    finally:
        db.close()
    print(f"[{result.status_code}] {result.message}")
    if not result.success:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
