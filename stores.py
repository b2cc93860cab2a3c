import re
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from passlib.context import CryptContext
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import now, serialize_doc
from schemas import Order, Product, User

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    user = serialize_doc(user)
    # Never send password hash
    user.pop("password", None)
    return user


class UserStore:
    def __init__(self, db: Database):
        self.collection = db["user"]

    def find_by_email(self, email: str) -> Optional[dict]:
        return self.collection.find_one({"email": email.lower()})

    def find_by_id(self, user_id: ObjectId) -> Optional[dict]:
        return self.collection.find_one({"_id": user_id})

    def create(self, user: User) -> dict:
        doc = user.to_mongo()
        doc["email"] = doc["email"].lower()
        result = self.collection.insert_one(doc)
        return self.collection.find_one({"_id": result.inserted_id})

    def verify_password(self, user: dict, password: str) -> bool:
        hashed = user.get("password")
        if not hashed:
            return False
        return pwd_context.verify(password, hashed)

    def update_profile(self, user_id: ObjectId, changes: Dict[str, Any]) -> Optional[dict]:
        changes = dict(changes, updatedAt=now())
        return self.collection.find_one_and_update(
            {"_id": user_id}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )

    def link_google(self, user_id: ObjectId, google_id: str) -> Optional[dict]:
        return self.update_profile(user_id, {"googleId": google_id})

    def set_role(self, user_id: ObjectId, role: str) -> Optional[dict]:
        return self.update_profile(user_id, {"role": role})

    def list_all(self) -> List[dict]:
        return list(self.collection.find({}, {"password": 0}).sort("createdAt", DESCENDING))


class ProductStore:
    def __init__(self, db: Database):
        self.collection = db["product"]

    def find_by_id(self, product_id: ObjectId) -> Optional[dict]:
        return self.collection.find_one({"_id": product_id})

    def create(self, product: Product) -> dict:
        result = self.collection.insert_one(product.to_mongo())
        return self.collection.find_one({"_id": result.inserted_id})

    def update(self, product_id: ObjectId, changes: Dict[str, Any]) -> Optional[dict]:
        changes = dict(changes, updatedAt=now())
        return self.collection.find_one_and_update(
            {"_id": product_id}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )

    def delete(self, product_id: ObjectId) -> bool:
        return self.collection.delete_one({"_id": product_id}).deleted_count > 0

    def list(
        self,
        category: Optional[str] = None,
        featured: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 12,
    ) -> Tuple[List[dict], int]:
        query: Dict[str, Any] = {"isActive": True}
        if category:
            query["category"] = category
        if featured is not None:
            query["featured"] = featured
        if search:
            pattern = re.escape(search)
            query["$or"] = [
                {"name": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
            ]
        skip = max(page - 1, 0) * limit
        cursor = self.collection.find(query).sort("createdAt", DESCENDING).skip(skip).limit(limit)
        return list(cursor), self.collection.count_documents(query)

    def list_all(self) -> List[dict]:
        return list(self.collection.find({}).sort("createdAt", DESCENDING))

    def reserve_stock(self, product_id: ObjectId, quantity: int) -> Optional[dict]:
        """Decrement stock only if at least `quantity` units remain.

        The filter and the decrement are one write, so concurrent orders cannot
        both pass the check. Returns the updated product, or None when the
        product is missing or short.
        """
        return self.collection.find_one_and_update(
            {"_id": product_id, "stock": {"$gte": quantity}},
            {"$inc": {"stock": -quantity}, "$set": {"updatedAt": now()}},
            return_document=ReturnDocument.AFTER,
        )

    def restore_stock(self, product_id: ObjectId, quantity: int) -> bool:
        result = self.collection.update_one(
            {"_id": product_id},
            {"$inc": {"stock": quantity}, "$set": {"updatedAt": now()}},
        )
        return result.matched_count > 0


class OrderStore:
    def __init__(self, db: Database):
        self.collection = db["order"]
        self.products = db["product"]
        self.users = db["user"]

    def create(self, order: Order) -> dict:
        result = self.collection.insert_one(order.to_mongo())
        return self.collection.find_one({"_id": result.inserted_id})

    def find_by_id(self, order_id: ObjectId) -> Optional[dict]:
        return self.collection.find_one({"_id": order_id})

    def list_for_customer(self, customer_id: ObjectId) -> List[dict]:
        return list(self.collection.find({"customer": customer_id}).sort("createdAt", DESCENDING))

    def list(self, status: Optional[str] = None, page: int = 1, limit: int = 20) -> Tuple[List[dict], int]:
        query: Dict[str, Any] = {}
        if status:
            query["status"] = status
        skip = max(page - 1, 0) * limit
        cursor = self.collection.find(query).sort("createdAt", DESCENDING).skip(skip).limit(limit)
        return list(cursor), self.collection.count_documents(query)

    def set_status(self, order_id: ObjectId, status: str) -> Optional[dict]:
        return self.collection.find_one_and_update(
            {"_id": order_id},
            {"$set": {"status": status, "updatedAt": now()}},
            return_document=ReturnDocument.AFTER,
        )

    def transition_if(self, order_id: ObjectId, allowed: Tuple[str, ...], status: str) -> Optional[dict]:
        """Move to `status` only while the stored status is one of `allowed`.

        Returns the updated order, or None if it is missing or already moved on.
        """
        return self.collection.find_one_and_update(
            {"_id": order_id, "status": {"$in": list(allowed)}},
            {"$set": {"status": status, "updatedAt": now()}},
            return_document=ReturnDocument.AFTER,
        )

    def stats(self) -> Dict[str, Any]:
        status_stats = list(
            self.collection.aggregate(
                [{"$group": {"_id": "$status", "count": {"$sum": 1}, "totalAmount": {"$sum": "$totalAmount"}}}]
            )
        )
        revenue = list(
            self.collection.aggregate(
                [
                    {"$match": {"status": {"$ne": "cancelled"}}},
                    {"$group": {"_id": None, "total": {"$sum": "$totalAmount"}}},
                ]
            )
        )
        return {
            "statusStats": status_stats,
            "totalOrders": self.collection.count_documents({}),
            "totalRevenue": revenue[0]["total"] if revenue else 0,
        }

    def populate(self, order: dict, with_customer: bool = True) -> dict:
        """Serialize an order, expanding product and customer references."""
        items = []
        for item in order.get("items", []):
            product = self.products.find_one({"_id": item["product"]})
            items.append({**item, "product": serialize_doc(product) if product else None})
        out = serialize_doc(order)
        out["items"] = items
        if with_customer:
            customer = self.users.find_one({"_id": order["customer"]}, {"name": 1, "email": 1})
            out["customer"] = serialize_doc(customer) if customer else None
        return out
