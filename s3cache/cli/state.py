from dataclasses import dataclass

from ..errors import StoreError
from ..store import AbstractBlobStore, LocalFileBlobStore, connect_bucket, make_client
from .settings import Settings, logger


@dataclass(frozen=True)
class AppState:
    """The resolved settings and the store built from them.

    Created once per command and handed to everything that needs it."""

    settings: Settings
    store: AbstractBlobStore

    @classmethod
    def of_settings(cls, cfg: Settings) -> "AppState":
        if cfg.store_dir is not None:
            try:
                cfg.store_dir.mkdir(parents=True, exist_ok=True)
            except OSError as err:
                raise StoreError(f"could not create store at {cfg.store_dir}: {err}") from err
            logger.debug(f"Using local store at {cfg.store_dir}")
            return cls(settings=cfg, store=LocalFileBlobStore(cfg.store_dir))
        client = make_client(
            endpoint=cfg.endpoint,
            region=cfg.region,
            access_key_id=cfg.get_access_key_id(),
            secret_access_key=cfg.get_secret_access_key(),
            max_attempts=cfg.max_attempts,
            max_pool_connections=cfg.concurrency,
        )
        store = connect_bucket(client, cfg.bucket, create=cfg.create_bucket)
        logger.debug(f"Using {store.id} at {cfg.endpoint or 'AWS'}")
        return cls(settings=cfg, store=store)
