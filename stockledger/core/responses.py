"""List envelope shared by the collection endpoints: {"items": [...], "total": <int>}.

Listings are returned whole (movements are capped before serialization),
so ``total`` is the length of ``items``.
"""


def list_response(items: list) -> dict:
    return {"items": items, "total": len(items)}
