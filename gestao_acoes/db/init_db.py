import logging

from sqlalchemy import inspect, text
from sqlalchemy.orm import Session

from gestao_acoes.db import models
from gestao_acoes.db.session import SessionLocal

logger = logging.getLogger("gestao_acoes.db")

MAIN_COMPANY_NAME = "Empresa Principal"


def ensure_missing_columns(engine) -> None:
    if engine.dialect.name != "sqlite":
        return
    inspector = inspect(engine)
    preparer = engine.dialect.identifier_preparer
    existing_tables = set(inspector.get_table_names())
    for table_name, table in models.Base.metadata.tables.items():
        if table_name not in existing_tables:
            continue
        existing_columns = {col["name"] for col in inspector.get_columns(table_name)}
        for column in table.columns:
            if column.name in existing_columns:
                continue
            col_type = column.type.compile(dialect=engine.dialect)
            logger.info("Adicionando coluna %s.%s", table_name, column.name)
            with engine.begin() as connection:
                connection.execute(
                    text(
                        f"ALTER TABLE {preparer.quote(table_name)} "
                        f"ADD COLUMN {preparer.quote(column.name)} {col_type}"
                    )
                )


def ensure_main_company(db: Session) -> models.Company:
    company = db.query(models.Company).filter(models.Company.is_main.is_(True)).first()
    if company:
        return company
    company = db.query(models.Company).order_by(models.Company.created_at.asc()).first()
    if company:
        company.is_main = True
    else:
        company = models.Company(name=MAIN_COMPANY_NAME, is_main=True)
        db.add(company)
    db.commit()
    db.refresh(company)
    return company


def seed_initial_data() -> None:
    db: Session = SessionLocal()
    try:
        company = ensure_main_company(db)
        logger.info("Seed OK: empresa principal %s", company.name)
    finally:
        db.close()
