"""Create and drop SQL tables for the settlement domain."""

from protean.domain import Domain
from sqlalchemy import create_engine

from settlement.domain import logger

_SQL_PROVIDERS = ("sqlite", "postgresql")


def _register_tables(domain: Domain, provider_name: str):
    # Touching a repository's DAO registers the model with SQLAlchemy metadata
    records = [
        *domain.registry.aggregates.values(),
        *domain.registry.entities.values(),
        *domain.registry.projections.values(),
    ]
    for record in records:
        if record.cls.meta_.provider == provider_name:
            domain.repository_for(record.cls)._dao  # noqa: B018


def setup_db(domain: Domain):
    """Create tables for every SQL provider the domain is configured with."""
    with domain.domain_context():
        for name, provider in domain.providers.items():
            if provider.conn_info["provider"] not in _SQL_PROVIDERS:
                continue
            engine = create_engine(provider.conn_info["database_uri"])
            _register_tables(domain, provider.name)
            provider._metadata.create_all(engine)
            logger.info("Database schema created", provider=name, tables=len(provider._metadata.tables))


def drop_db(domain: Domain):
    """Drop tables for every SQL provider the domain is configured with."""
    with domain.domain_context():
        for name, provider in domain.providers.items():
            if provider.conn_info["provider"] not in _SQL_PROVIDERS:
                continue
            engine = create_engine(provider.conn_info["database_uri"])
            _register_tables(domain, provider.name)
            provider._metadata.drop_all(engine)
            logger.info("Database schema dropped", provider=name)
