from tcgprices.utils.batching import GroupFetchResult, chunk, run_bounded

__all__ = ["GroupFetchResult", "chunk", "run_bounded"]
