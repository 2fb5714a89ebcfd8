"""One-to-many relations kept in application code: Customer -> Orders, Item -> Reviews.

The parent holds an ordered list of child ids; children hold no back-reference.
Nothing in MongoDB ties the two collections together, so every attach/detach
is two separate writes:

    attach:  create child  ->  $push id onto parent
    detach:  $pull id from parent (only if present)  ->  delete child

The list itself is only ever changed with $push / conditional $pull, so two
requests touching the same parent cannot overwrite each other's changes.
A failure between the two writes leaves an orphan child (exists, listed
nowhere); it never leaves a dangling id on the parent.

Deleting parents in bulk does not touch their children.
"""

import logging
import math
from numbers import Real
from typing import Any, Callable, Dict, List

from database import DocumentCollection, Store, parse_object_id
from errors import InvalidInputError, NotFoundError
from schemas import Order, Review

logger = logging.getLogger(__name__)

MIN_RATING = 0
MAX_RATING = 5


class Relation:
    def __init__(
        self,
        parents: DocumentCollection,
        children: DocumentCollection,
        field: str,
        parent_label: str,
        child_label: str,
    ):
        self.parents = parents
        self.children = children
        self.field = field
        self.parent_label = parent_label
        self.child_label = child_label

    def _log_extra(self, parent_id, child_id=None) -> Dict[str, Any]:
        extra = {f"{self.parent_label.lower()}_id": str(parent_id)}
        if child_id is not None:
            extra[f"{self.child_label.lower()}_id"] = str(child_id)
        return extra

    def _require_parent(self, parent_id) -> Dict[str, Any]:
        parent = self.parents.find_by_id(parent_id)
        if parent is None:
            raise NotFoundError(self.parent_label, str(parent_id))
        return parent

    def attach(self, parent_id, build_child: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        """Create a child and append its id to the parent's list. Returns the stored child.

        build_child runs after the parent lookup and may raise to abort before any write.
        """
        parent = self._require_parent(parent_id)
        child = build_child()
        child_id = self.children.create(child)
        if not self.parents.push_ref(parent["_id"], self.field, child_id):
            # parent vanished between the lookup and the push
            logger.error(
                f"{self.child_label} {child_id} created but {self.parent_label} {parent_id} is gone; orphaned",
                extra=self._log_extra(parent_id, child_id),
            )
            raise NotFoundError(self.parent_label, str(parent_id))
        logger.info(
            f"Attached {self.child_label} {child_id} to {self.parent_label} {parent_id}",
            extra=self._log_extra(parent_id, child_id),
        )
        stored = dict(child)
        stored["_id"] = child_id
        return stored

    def detach(self, parent_id, child_id) -> None:
        """Remove child from the parent's list and delete the child document."""
        parent = self._require_parent(parent_id)
        child_oid = parse_object_id(child_id, f"{self.child_label.lower()} id")
        if not self.parents.pull_ref(parent["_id"], self.field, child_oid):
            raise NotFoundError(
                self.child_label, str(child_id),
                message=f"{self.child_label} not found for the {self.parent_label.lower()}",
            )
        try:
            self.children.delete_by_id(child_oid)
        except Exception:
            logger.error(
                f"{self.child_label} {child_oid} unlinked from {self.parent_label} {parent_id} "
                f"but not deleted; orphaned",
                extra=self._log_extra(parent_id, child_oid),
            )
            raise
        logger.info(
            f"Detached {self.child_label} {child_oid} from {self.parent_label} {parent_id}",
            extra=self._log_extra(parent_id, child_oid),
        )

    def children_of(self, parent_id) -> List[Dict[str, Any]]:
        parent = self._require_parent(parent_id)
        return self.parents.populate(parent, self.field, self.children)[self.field]

    def delete_all_parents(self) -> int:
        """Delete every parent document. Children are left in place."""
        deleted = self.parents.delete_all()
        logger.info(f"Deleted {deleted} {self.parent_label.lower()} document(s); {self.child_label.lower()}s kept")
        return deleted


def validate_rating(rating: Any) -> float:
    if isinstance(rating, bool) or not isinstance(rating, Real):
        raise InvalidInputError("Invalid rating.", field="rating")
    if math.isnan(rating) or rating < MIN_RATING or rating > MAX_RATING:
        raise InvalidInputError("Invalid rating.", field="rating")
    return rating


class RelationshipManager:
    def __init__(self, store: Store):
        self.customer_orders = Relation(store.customers, store.orders, "orders", "Customer", "Order")
        self.item_reviews = Relation(store.items, store.reviews, "reviews", "Item", "Review")

    # Customer -> Orders

    def add_order(self, customer_id, order: Order) -> Dict[str, Any]:
        return self.customer_orders.attach(customer_id, order.model_dump)

    def remove_order(self, customer_id, order_id) -> None:
        self.customer_orders.detach(customer_id, order_id)

    def list_orders(self, customer_id) -> List[Dict[str, Any]]:
        return self.customer_orders.children_of(customer_id)

    # Item -> Reviews

    def add_review(self, item_id, rating: Any, comment: str) -> Dict[str, Any]:
        def build_review():
            return Review(rating=validate_rating(rating), comment=comment).model_dump()

        return self.item_reviews.attach(item_id, build_review)

    def remove_review(self, item_id, review_id) -> None:
        self.item_reviews.detach(item_id, review_id)

    def list_reviews(self, item_id) -> List[Dict[str, Any]]:
        return self.item_reviews.children_of(item_id)

    def delete_all_customers(self) -> int:
        return self.customer_orders.delete_all_parents()

    def delete_all_items(self) -> int:
        return self.item_reviews.delete_all_parents()


def average_rating(reviews: List[Dict[str, Any]]):
    ratings = [r["rating"] for r in reviews if isinstance(r.get("rating"), Real)]
    if not ratings:
        return None
    return sum(ratings) / len(ratings)
