"""
Request sequencing for the infinite post feed.

Each change of search text or tag starts a new generation. Responses carry
the ticket they were requested with and are applied only when that ticket
belongs to the current generation, so a slow response for an old query can
never overwrite newer results.
"""

from typing import Any, Dict, List, Mapping, NamedTuple, Optional

FEED_PAGE_SIZE = 12


class FeedTicket(NamedTuple):
    generation: int
    page: int
    search: str
    tag: Optional[str]


class FeedSequence:
    def __init__(self, limit: int = FEED_PAGE_SIZE):
        self.limit = limit
        self.generation = 0
        self.search = ""
        self.tag: Optional[str] = None
        self.posts: List[Dict[str, Any]] = []
        self.page = 0
        self.has_more = True
        self._pending_page: Optional[int] = None

    def start(self, search: str = "", tag: Optional[str] = None) -> FeedTicket:
        """Begin a new query intent; any outstanding request becomes stale."""
        self.generation += 1
        self.search = search.strip()
        self.tag = None if tag in (None, "", "all") else tag
        self.posts = []
        self.page = 0
        self.has_more = True
        return self._issue(1)

    def next_page(self) -> Optional[FeedTicket]:
        if not self.has_more or self._pending_page is not None:
            return None
        return self._issue(self.page + 1)

    def _issue(self, page: int) -> FeedTicket:
        self._pending_page = page
        return FeedTicket(self.generation, page, self.search, self.tag)

    def is_current(self, ticket: FeedTicket) -> bool:
        return ticket.generation == self.generation

    def params(self, ticket: FeedTicket) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": ticket.page, "limit": self.limit}
        if ticket.search:
            params["search"] = ticket.search
        if ticket.tag:
            params["tag"] = ticket.tag
        return params

    def apply(self, ticket: FeedTicket, response: Mapping[str, Any]) -> bool:
        """Apply a ``{data, pagination}`` response. Returns False when it was stale."""
        if not self.is_current(ticket):
            return False
        pagination = response["pagination"]
        if ticket.page == 1:
            self.posts = list(response["data"])
        else:
            self.posts.extend(response["data"])
        self.page = pagination["page"]
        self.has_more = pagination["page"] < pagination["totalPages"]
        self._pending_page = None
        return True

    def fail(self, ticket: FeedTicket) -> None:
        """Release a failed request so the same page can be retried."""
        if self.is_current(ticket):
            self._pending_page = None
