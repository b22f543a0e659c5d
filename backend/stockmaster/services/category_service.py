# Overview: Category CRUD, per-category item metrics, ordering.

from __future__ import annotations

import re

from sqlalchemy import func

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Item, User
from . import audit_service
from .pagination import paginate


def slugify(name: str) -> str:
    slug = name.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def _unique_slug(name: str, *, exclude_id: int | None = None) -> str:
    base = slugify(name) or "category"
    candidate = base
    suffix = 2
    while True:
        query = db.session.query(Category.id).filter(Category.slug == candidate)
        if exclude_id is not None:
            query = query.filter(Category.id != exclude_id)
        if query.first() is None:
            return candidate
        candidate = f"{base}-{suffix}"
        suffix += 1


def _name_taken(name: str, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(Category.id).filter(func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    return query.first() is not None


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    return category


def category_metrics(category_id: int) -> dict:
    """Live item count and stock value (cost price x quantity) of active items."""
    count, value = (
        db.session.query(
            func.count(Item.id),
            func.coalesce(func.sum(Item.cost_price_cents * Item.stock_quantity), 0),
        )
        .filter(Item.category_id == category_id, Item.is_active.is_(True))
        .one()
    )
    return {"item_count": int(count or 0), "total_value_cents": int(value or 0)}


def serialize(category: Category, *, with_metrics: bool = False, with_subcategories: bool = False) -> dict:
    data = category.to_dict()
    if with_metrics:
        data.update(category_metrics(category.id))
    if with_subcategories:
        data["subcategories"] = [
            sub.to_dict() for sub in sorted(category.subcategories, key=lambda c: (c.display_order, c.name))
        ]
    return data


def create_category(*, patch: dict, actor: User) -> Category:
    name = patch["name"]
    if _name_taken(name):
        raise ConflictError("Category name already exists")
    parent_id = patch.get("parent_id")
    if parent_id is not None and db.session.get(Category, parent_id) is None:
        raise NotFoundError("Parent category not found")

    category = Category(slug=_unique_slug(name), created_by_user_id=actor.id)
    for key, value in patch.items():
        setattr(category, key, value)
    db.session.add(category)
    db.session.flush()

    audit_service.log_action(
        action="category.create",
        resource="category",
        resource_id=category.id,
        actor=actor,
        description=f"Created category: {category.name}",
    )
    db.session.commit()
    return category


def list_categories(*, is_active: bool | None = None) -> list[Category]:
    query = Category.query
    if is_active is not None:
        query = query.filter(Category.is_active.is_(is_active))
    return query.order_by(Category.display_order.asc(), Category.name.asc()).all()


def update_category(category_id: int, *, patch: dict, actor: User) -> Category:
    category = get_category(category_id)
    before = category.to_dict()

    name = patch.get("name")
    if name and name.lower() != category.name.lower():
        if _name_taken(name, exclude_id=category.id):
            raise ConflictError("Category name already exists")
    parent_id = patch.get("parent_id")
    if parent_id is not None:
        if parent_id == category.id:
            raise ValidationError("A category cannot be its own parent")
        if db.session.get(Category, parent_id) is None:
            raise NotFoundError("Parent category not found")

    for key, value in patch.items():
        setattr(category, key, value)
    if name:
        category.slug = _unique_slug(name, exclude_id=category.id)

    audit_service.log_action(
        action="category.update",
        resource="category",
        resource_id=category.id,
        actor=actor,
        description=f"Updated category: {category.name}",
        changes={"before": before, "after": category.to_dict()},
    )
    db.session.commit()
    return category


def delete_category(category_id: int, *, actor: User) -> None:
    category = get_category(category_id)

    if db.session.query(Item.id).filter(Item.category_id == category.id).first() is not None:
        raise ConflictError("Cannot delete category with items. Please move or delete items first.")
    if db.session.query(Category.id).filter(Category.parent_id == category.id).first() is not None:
        raise ConflictError("Cannot delete category with subcategories. Please delete subcategories first.")

    audit_service.log_action(
        action="category.delete",
        resource="category",
        resource_id=category.id,
        actor=actor,
        description=f"Deleted category: {category.name}",
        severity="medium",
    )
    db.session.delete(category)
    db.session.commit()


def category_items(category_id: int, *, page: int | None = None, per_page: int | None = None):
    category = get_category(category_id)
    query = Item.query.filter(Item.category_id == category.id, Item.is_active.is_(True)).order_by(Item.name.asc())
    items, pagination = paginate(query, page, per_page)
    return category, items, pagination


def category_stats() -> dict:
    rows = (
        db.session.query(
            Category.id,
            Category.name,
            func.count(Item.id),
            func.coalesce(func.sum(Item.cost_price_cents * Item.stock_quantity), 0),
        )
        .outerjoin(Item, (Item.category_id == Category.id) & (Item.is_active.is_(True)))
        .filter(Category.is_active.is_(True))
        .group_by(Category.id, Category.name)
        .all()
    )
    top = sorted(rows, key=lambda r: (-(r[2] or 0), -(r[3] or 0), r[1]))[:10]
    return {
        "total_categories": Category.query.count(),
        "active_categories": Category.query.filter(Category.is_active.is_(True)).count(),
        "categories_with_items": sum(1 for row in rows if row[2]),
        "top_categories": [
            {"id": cid, "name": name, "item_count": int(count or 0), "total_value_cents": int(value or 0)}
            for cid, name, count, value in top
        ],
    }


def reorder_categories(category_ids: list, *, actor: User) -> int:
    if not isinstance(category_ids, list) or not category_ids:
        raise ValidationError("categories must be a non-empty list of ids")
    categories = {c.id: c for c in Category.query.filter(Category.id.in_(category_ids)).all()}
    for index, category_id in enumerate(category_ids):
        category = categories.get(category_id)
        if category is not None:
            category.display_order = index
    audit_service.log_action(
        action="category.reorder",
        resource="category",
        actor=actor,
        description=f"Reordered {len(categories)} categories",
    )
    db.session.commit()
    return len(categories)
