from .official_loader import OfficialLoader, load_official_xlsx, official_map

__all__ = ["OfficialLoader", "load_official_xlsx", "official_map"]
