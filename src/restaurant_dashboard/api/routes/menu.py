"""
Menu routes: categories and items.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ...models.database import get_db
from ...models.schemas import (
    MenuCategoryCreate,
    MenuCategoryResponse,
    MenuCategoryUpdate,
    MenuItemCreate,
    MenuItemResponse,
    MenuItemUpdate,
)
from ...services.menu_service import MenuService
from ..dependencies import require_permission

router = APIRouter(prefix="/menu", tags=["menu"])


@router.get("/categories", response_model=List[MenuCategoryResponse])
def list_categories(
    restaurant_id: int,
    active_only: bool = False,
    user_id: str = Depends(require_permission("menu.view")),
    db: Session = Depends(get_db),
):
    return MenuService(db).list_categories(restaurant_id, active_only)


@router.post("/categories", response_model=MenuCategoryResponse, status_code=201)
def create_category(
    restaurant_id: int,
    data: MenuCategoryCreate,
    user_id: str = Depends(require_permission("menu.edit")),
    db: Session = Depends(get_db),
):
    return MenuService(db).create_category(restaurant_id, data)


@router.put("/categories/order", response_model=List[MenuCategoryResponse])
def reorder_categories(
    restaurant_id: int,
    category_ids: List[int],
    user_id: str = Depends(require_permission("menu.edit")),
    db: Session = Depends(get_db),
):
    return MenuService(db).reorder_categories(restaurant_id, category_ids)


@router.patch("/categories/{category_id}", response_model=MenuCategoryResponse)
def update_category(
    restaurant_id: int,
    category_id: int,
    data: MenuCategoryUpdate,
    user_id: str = Depends(require_permission("menu.edit")),
    db: Session = Depends(get_db),
):
    return MenuService(db).update_category(restaurant_id, category_id, data)


@router.delete("/categories/{category_id}", status_code=204)
def delete_category(
    restaurant_id: int,
    category_id: int,
    cascade: bool = False,
    user_id: str = Depends(require_permission("menu.delete")),
    db: Session = Depends(get_db),
):
    MenuService(db).delete_category(restaurant_id, category_id, cascade=cascade)
    return Response(status_code=204)


@router.get("/items", response_model=List[MenuItemResponse])
def list_items(
    restaurant_id: int,
    category_id: Optional[int] = None,
    search: Optional[str] = None,
    available_only: bool = False,
    user_id: str = Depends(require_permission("menu.view")),
    db: Session = Depends(get_db),
):
    return MenuService(db).list_items(restaurant_id, category_id, search, available_only)


@router.post("/items", response_model=MenuItemResponse, status_code=201)
def create_item(
    restaurant_id: int,
    data: MenuItemCreate,
    user_id: str = Depends(require_permission("menu.edit")),
    db: Session = Depends(get_db),
):
    return MenuService(db).create_item(restaurant_id, data)


@router.patch("/items/{item_id}", response_model=MenuItemResponse)
def update_item(
    restaurant_id: int,
    item_id: int,
    data: MenuItemUpdate,
    user_id: str = Depends(require_permission("menu.edit")),
    db: Session = Depends(get_db),
):
    return MenuService(db).update_item(restaurant_id, item_id, data)


@router.post("/items/{item_id}/toggle", response_model=MenuItemResponse)
def toggle_item(
    restaurant_id: int,
    item_id: int,
    user_id: str = Depends(require_permission("menu.edit")),
    db: Session = Depends(get_db),
):
    return MenuService(db).toggle_availability(restaurant_id, item_id)


@router.delete("/items/{item_id}", status_code=204)
def delete_item(
    restaurant_id: int,
    item_id: int,
    user_id: str = Depends(require_permission("menu.delete")),
    db: Session = Depends(get_db),
):
    MenuService(db).delete_item(restaurant_id, item_id)
    return Response(status_code=204)
