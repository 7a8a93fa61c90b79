"""REST endpoints.

Handlers only translate between HTTP and the services; every business rule
lives in the service layer shared with the GraphQL schema.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from database import Page
from schemas import (
    Customer,
    CustomerOut,
    CustomerUpdate,
    InventoryAdjustment,
    OrderCreate,
    OrderOut,
    OrderUpdate,
    Product,
    ProductOut,
    ProductUpdate,
)
from services import Services, get_services

router = APIRouter()


# Envelopes

def ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


def listing(data: List[Any]) -> Dict[str, Any]:
    return {"success": True, "count": len(data), "data": data}


def paged(page: Page, data: List[Any]) -> Dict[str, Any]:
    return {"success": True, "count": len(data), "pagination": page.pagination(), "data": data}


def customer_json(doc: Dict[str, Any]) -> Dict[str, Any]:
    return CustomerOut.from_document(doc).model_dump(mode="json")


def product_json(doc: Dict[str, Any]) -> Dict[str, Any]:
    return ProductOut.from_document(doc).model_dump(mode="json")


def order_json(doc: Dict[str, Any], customer=None, products=None) -> Dict[str, Any]:
    return OrderOut.from_document(doc, customer, products).model_dump(mode="json")


def recommendation_json(entry: Dict[str, Any]) -> Dict[str, Any]:
    return {"product": product_json(entry["product"]), "score": entry["score"], "reason": entry["reason"]}


# Customers

@router.get("/customers")
def list_customers(
    page: int = Query(1),
    limit: int = Query(10),
    search: Optional[str] = None,
    services: Services = Depends(get_services),
):
    result = services.customers.list_customers(page, limit, search)
    return paged(result, [customer_json(doc) for doc in result.items])


@router.post("/customers", status_code=201)
def create_customer(payload: Customer, services: Services = Depends(get_services)):
    return ok(customer_json(services.customers.create_customer(payload)))


@router.get("/customers/{customer_id}")
def get_customer(customer_id: str, services: Services = Depends(get_services)):
    return ok(customer_json(services.customers.get_customer(customer_id)))


@router.put("/customers/{customer_id}")
def update_customer(customer_id: str, payload: CustomerUpdate, services: Services = Depends(get_services)):
    return ok(customer_json(services.customers.update_customer(customer_id, payload)))


@router.delete("/customers/{customer_id}")
def delete_customer(customer_id: str, services: Services = Depends(get_services)):
    services.customers.delete_customer(customer_id)
    return ok({})


@router.get("/customers/{customer_id}/recommendations")
def customer_recommendations(
    customer_id: str,
    limit: int = Query(5),
    services: Services = Depends(get_services),
):
    entries = services.recommendations.get_recommendations(customer_id, limit)
    return listing([recommendation_json(entry) for entry in entries])


@router.get("/customers/{customer_id}/orders")
def customer_orders(
    customer_id: str,
    page: int = Query(1),
    limit: int = Query(10),
    services: Services = Depends(get_services),
):
    result = services.orders.list_customer_orders(customer_id, page, limit)
    return paged(result, [order_json(doc) for doc in result.items])


@router.post("/customers/{customer_id}/orders", status_code=201)
def create_order(customer_id: str, payload: OrderCreate, services: Services = Depends(get_services)):
    return ok(order_json(services.orders.create_order(customer_id, payload)))


# Products

@router.get("/products")
def list_products(
    page: int = Query(1),
    limit: int = Query(10),
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    services: Services = Depends(get_services),
):
    result = services.products.list_products(page, limit, category, search, min_price, max_price)
    return paged(result, [product_json(doc) for doc in result.items])


@router.post("/products", status_code=201)
def create_product(payload: Product, services: Services = Depends(get_services)):
    return ok(product_json(services.products.create_product(payload)))


@router.get("/products/recommendations")
def product_recommendations(
    category: Optional[str] = None,
    limit: int = Query(5),
    services: Services = Depends(get_services),
):
    entries = services.recommendations.get_catalog_recommendations(category, limit)
    return listing([recommendation_json(entry) for entry in entries])


@router.get("/products/{product_id}")
def get_product(product_id: str, services: Services = Depends(get_services)):
    return ok(product_json(services.products.get_product(product_id)))


@router.put("/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, services: Services = Depends(get_services)):
    return ok(product_json(services.products.update_product(product_id, payload)))


@router.delete("/products/{product_id}")
def delete_product(product_id: str, services: Services = Depends(get_services)):
    services.products.delete_product(product_id)
    return ok({})


@router.post("/products/{product_id}/inventory")
def adjust_inventory(product_id: str, payload: InventoryAdjustment, services: Services = Depends(get_services)):
    return ok(product_json(services.products.adjust_inventory(product_id, payload.adjustment)))


# Orders

@router.get("/orders")
def list_orders(
    page: int = Query(1),
    limit: int = Query(10),
    status: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    services: Services = Depends(get_services),
):
    result = services.orders.list_orders(page, limit, status, start_date, end_date)
    return paged(result, [order_json(doc) for doc in result.items])


@router.get("/orders/{order_id}")
def get_order(order_id: str, services: Services = Depends(get_services)):
    order, customer, products = services.orders.get_order_details(order_id)
    return ok(order_json(order, customer, products))


@router.put("/orders/{order_id}")
def update_order(order_id: str, payload: OrderUpdate, services: Services = Depends(get_services)):
    return ok(order_json(services.orders.update_order(order_id, payload)))


@router.delete("/orders/{order_id}")
def cancel_order(order_id: str, services: Services = Depends(get_services)):
    return ok(order_json(services.orders.cancel_order(order_id)))


@router.get("/orders/{order_id}/tracking")
def order_tracking(order_id: str, services: Services = Depends(get_services)):
    return ok(services.tracking.get_tracking(order_id))
