import json
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pymongo.database import Database

from database import get_db, oid, serialize_doc
from errors import InvalidInput, NotFound
from schemas import Product
from security import require_admin
from storage import MAX_IMAGE_BYTES, MAX_IMAGES, ImageStorage, get_storage, upload_images
from stores import ProductStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])


class ProductUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = Field(None, min_length=1)
    stock: Optional[int] = Field(None, ge=0)
    sizes: Optional[List[str]] = None
    colors: Optional[List[str]] = None
    featured: Optional[bool] = None
    is_active: Optional[bool] = Field(None, alias="isActive")


def _products(db: Database = Depends(get_db)) -> ProductStore:
    return ProductStore(db)


def _json_list(raw: Optional[str], field: str) -> Optional[List[str]]:
    if raw is None:
        return None
    try:
        value = json.loads(raw or "[]")
    except ValueError:
        raise InvalidInput(f"{field} must be a JSON array of strings")
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise InvalidInput(f"{field} must be a JSON array of strings")
    return value


def _flag(raw: Optional[str]) -> Optional[bool]:
    if raw is None:
        return None
    return raw.strip().lower() == "true"


def _form_fields(
    name: Optional[str],
    description: Optional[str],
    price: Optional[str],
    category: Optional[str],
    sizes: Optional[str],
    colors: Optional[str],
    stock: Optional[str],
    featured: Optional[str],
    is_active: Optional[str],
) -> Dict[str, Any]:
    raw = {
        "name": name,
        "description": description,
        "price": price,
        "category": category,
        "stock": stock,
        "sizes": _json_list(sizes, "sizes"),
        "colors": _json_list(colors, "colors"),
        "featured": _flag(featured),
        "isActive": _flag(is_active),
    }
    try:
        fields = ProductUpdate(**{k: v for k, v in raw.items() if v is not None})
    except ValidationError as e:
        raise InvalidInput(f"Invalid product data: {e.errors()[0]['msg']}")
    return fields.model_dump(by_alias=True, exclude_none=True)


def _read_images(images: Optional[List[UploadFile]]) -> List[Tuple[str, bytes, str]]:
    files = [f for f in (images or []) if f.filename]
    if len(files) > MAX_IMAGES:
        raise InvalidInput(f"At most {MAX_IMAGES} images can be uploaded")
    out = []
    for f in files:
        content_type = f.content_type or ""
        if not content_type.startswith("image/"):
            raise InvalidInput("Only image files are allowed")
        # Read one byte past the limit so oversized uploads are never fully buffered
        data = f.file.read(MAX_IMAGE_BYTES + 1)
        if len(data) > MAX_IMAGE_BYTES:
            raise InvalidInput(f"Image {f.filename} exceeds the 5MB limit")
        out.append((f.filename, data, content_type))
    return out


# Routes
@router.get("")
def list_products(
    category: Optional[str] = None,
    featured: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    products: ProductStore = Depends(_products),
):
    items, total = products.list(category=category, featured=featured, search=search, page=page, limit=limit)
    return {
        "products": [serialize_doc(p) for p in items],
        "totalPages": math.ceil(total / limit),
        "currentPage": page,
        "total": total,
    }


@router.get("/admin/all")
def list_all_products(_: dict = Depends(require_admin), products: ProductStore = Depends(_products)):
    return [serialize_doc(p) for p in products.list_all()]


@router.get("/{product_id}")
def get_product(product_id: str, products: ProductStore = Depends(_products)):
    product = products.find_by_id(oid(product_id))
    if not product:
        raise NotFound("Product not found")
    return serialize_doc(product)


@router.post("", status_code=201)
def create_product(
    name: str = Form(...),
    price: str = Form(...),
    category: str = Form(...),
    description: Optional[str] = Form(None),
    sizes: Optional[str] = Form(None),
    colors: Optional[str] = Form(None),
    stock: Optional[str] = Form(None),
    featured: Optional[str] = Form(None),
    is_active: Optional[str] = Form(None, alias="isActive"),
    images: Optional[List[UploadFile]] = File(None),
    _: dict = Depends(require_admin),
    products: ProductStore = Depends(_products),
    storage: Optional[ImageStorage] = Depends(get_storage),
):
    fields = _form_fields(name, description, price, category, sizes, colors, stock, featured, is_active)
    files = _read_images(images)
    try:
        product = Product(**fields)
    except ValidationError as e:
        raise InvalidInput(f"Invalid product data: {e.errors()[0]['msg']}")
    # Upload only once the product is known to be valid
    product.images = upload_images(storage, files)
    created = products.create(product)
    logger.info("Product %s created with %d image(s)", created["_id"], len(product.images))
    return {"message": "Product created successfully", "product": serialize_doc(created)}


@router.put("/{product_id}")
def update_product(
    product_id: str,
    name: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    sizes: Optional[str] = Form(None),
    colors: Optional[str] = Form(None),
    stock: Optional[str] = Form(None),
    featured: Optional[str] = Form(None),
    is_active: Optional[str] = Form(None, alias="isActive"),
    images: Optional[List[UploadFile]] = File(None),
    _: dict = Depends(require_admin),
    products: ProductStore = Depends(_products),
    storage: Optional[ImageStorage] = Depends(get_storage),
):
    obj_id = oid(product_id)
    existing = products.find_by_id(obj_id)
    if not existing:
        raise NotFound("Product not found")
    changes = _form_fields(name, description, price, category, sizes, colors, stock, featured, is_active)
    new_urls = upload_images(storage, _read_images(images))
    if new_urls:
        changes["images"] = list(existing.get("images", [])) + new_urls
    product = products.update(obj_id, changes)
    if not product:
        raise NotFound("Product not found")
    return {"message": "Product updated successfully", "product": serialize_doc(product)}


@router.delete("/{product_id}")
def delete_product(product_id: str, _: dict = Depends(require_admin), products: ProductStore = Depends(_products)):
    if not products.delete(oid(product_id)):
        raise NotFound("Product not found")
    return {"message": "Product deleted successfully"}
