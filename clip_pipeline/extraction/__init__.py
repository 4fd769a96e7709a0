from .clip_selector import select_top

__all__ = ["select_top"]
