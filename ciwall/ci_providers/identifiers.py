from typing import Iterable, List

from .models import Commiter


def build_id_sort_key(build_id: str):
    if build_id.isdigit():
        return (0, int(build_id), "")
    return (1, 0, build_id)


def sort_build_ids(build_ids: Iterable) -> List[str]:
    """
    Deduplicate build ids and return them in a fixed order.

    Purely numeric ids come first, ascending by value ("9" before "10").
    Any other id follows, in lexicographic order.
    """
    unique = {str(build_id) for build_id in build_ids if build_id is not None}
    return sorted(unique, key=build_id_sort_key)


def dedupe_commiters(commiters: Iterable[Commiter]) -> List[Commiter]:
    """
    Keep one commiter per username.

    The first occurrence fixes the position in the list. Records for the
    same username are merged field by field; a known name or email is
    never replaced by a missing one, whatever order the records come in.
    """
    by_username: dict = {}
    for commiter in commiters:
        known = by_username.get(commiter.username)
        if known is None:
            by_username[commiter.username] = commiter
            continue
        enriched = {
            key: value
            for key, value in commiter.model_dump(exclude={"username"}).items()
            if value is not None
        }
        by_username[commiter.username] = known.model_copy(update=enriched)
    return list(by_username.values())
