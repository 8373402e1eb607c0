# Overview: Service-layer operations for branches; encapsulates business logic and database work.

"""
Branch management.

Exactly one branch may be headquarters. Creating or updating a branch
with is_headquarters=True while another HQ exists is a Conflict; the
HQ flag moves only by clearing it on the current HQ first.
"""
from __future__ import annotations

import logging

from ..errors import Conflict, NoHeadquarters, NotFound
from ..extensions import db
from ..models import Branch, Order, Sale, StockEntry
from .concurrency import atomic


logger = logging.getLogger(__name__)

BRANCH_MUTABLE_FIELDS = {"name", "address", "phone", "is_headquarters", "status"}


def get_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise NotFound("Branch", branch_id)
    return branch


def get_headquarters() -> Branch:
    hq = db.session.query(Branch).filter(Branch.is_headquarters.is_(True)).first()
    if hq is None:
        raise NoHeadquarters()
    return hq


def list_branches() -> list[Branch]:
    return db.session.query(Branch).order_by(Branch.is_headquarters.desc(), Branch.name.asc()).all()


def _check_unique(patch: dict, exclude_id: int | None = None) -> None:
    if "name" in patch:
        query = db.session.query(Branch).filter(Branch.name == patch["name"])
        if exclude_id is not None:
            query = query.filter(Branch.id != exclude_id)
        if query.first():
            raise Conflict("Branch name already exists", {"field": "name"})

    if patch.get("is_headquarters"):
        query = db.session.query(Branch).filter(Branch.is_headquarters.is_(True))
        if exclude_id is not None:
            query = query.filter(Branch.id != exclude_id)
        existing = query.first()
        if existing:
            raise Conflict(
                "A headquarters branch already exists",
                {"headquarters_id": existing.id},
            )


def create_branch(patch: dict) -> Branch:
    with atomic():
        _check_unique(patch)
        branch = Branch(**{k: v for k, v in patch.items() if k in BRANCH_MUTABLE_FIELDS})
        db.session.add(branch)
    logger.info("Created branch id=%s hq=%s", branch.id, branch.is_headquarters)
    return branch


def update_branch(branch_id: int, patch: dict) -> Branch:
    with atomic():
        branch = get_branch(branch_id)
        _check_unique(patch, exclude_id=branch_id)
        for k, v in patch.items():
            if k in BRANCH_MUTABLE_FIELDS:
                setattr(branch, k, v)
    return branch


def delete_branch(branch_id: int) -> None:
    """Delete a branch with no stock rows, sales or orders."""
    with atomic():
        branch = get_branch(branch_id)
        in_use = {
            "stock_entries": db.session.query(StockEntry).filter_by(branch_id=branch_id).count(),
            "sales": db.session.query(Sale).filter_by(branch_id=branch_id).count(),
            "orders": db.session.query(Order).filter_by(branch_id=branch_id).count(),
        }
        if any(in_use.values()):
            raise Conflict("Branch has inventory or transactions and cannot be deleted", in_use)
        db.session.delete(branch)
    logger.info("Deleted branch id=%s", branch_id)


def get_branch_stock(branch_id: int) -> dict:
    branch = get_branch(branch_id)
    entries = (
        db.session.query(StockEntry)
        .filter_by(branch_id=branch_id)
        .order_by(StockEntry.product_id.asc())
        .all()
    )
    return {
        "branch": branch.to_dict(),
        "items": [entry.to_dict(include_product=True) for entry in entries],
        "count": len(entries),
    }
