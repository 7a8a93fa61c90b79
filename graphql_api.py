"""GraphQL schema.

Resolvers validate input with the same pydantic models as the REST handlers and
call the same services, so both surfaces enforce identical rules. Domain errors
become GraphQL errors whose ``extensions.code`` tells clients whether the input
was rejected (``BAD_USER_INPUT``) or an upstream provider failed
(``SERVICE_UNAVAILABLE``).
"""

import functools
import logging
from typing import Any, Dict, Iterable, Optional

import graphene
import pydantic
from fastapi import APIRouter, Depends
from graphql import GraphQLError
from pydantic import BaseModel, Field

from errors import CustomerNotFound, ProductNotFound, ShopError, ValidationError
from schemas import (
    Address,
    Customer,
    CustomerOut,
    CustomerUpdate,
    OrderCreate,
    OrderOut,
    Product,
    ProductOut,
    ProductUpdate,
)
from services import Services, get_services

logger = logging.getLogger(__name__)

ERROR_CODES = {
    "validation": "BAD_USER_INPUT",
    "not_found": "BAD_USER_INPUT",
    "conflict": "BAD_USER_INPUT",
    "immutable_order_state": "BAD_USER_INPUT",
    "service_unavailable": "SERVICE_UNAVAILABLE",
}


def to_graphql_error(exc: ShopError) -> GraphQLError:
    code = ERROR_CODES.get(exc.kind)
    if code is None:
        return GraphQLError("Internal server error", extensions={"code": "INTERNAL_SERVER_ERROR", "kind": "internal"})
    return GraphQLError(exc.message, extensions={"code": code, "kind": exc.kind})


def translate_errors(resolver):
    @functools.wraps(resolver)
    def wrapper(*args, **kwargs):
        try:
            return resolver(*args, **kwargs)
        except ShopError as exc:
            if exc.kind == "internal":
                logger.exception("Internal error in %s", resolver.__name__)
            else:
                logger.warning("%s in %s: %s", type(exc).__name__, resolver.__name__, exc.message)
            raise to_graphql_error(exc) from exc
        except GraphQLError:
            raise
        except Exception as exc:
            logger.exception("Unhandled error in %s", resolver.__name__)
            raise GraphQLError(
                "Internal server error", extensions={"code": "INTERNAL_SERVER_ERROR", "kind": "internal"}
            ) from exc
    return wrapper


def validate(model, data: Dict[str, Any]):
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        error = exc.errors()[0]
        location = ".".join(str(part) for part in error["loc"])
        raise ValidationError(f"{location}: {error['msg']}" if location else error["msg"])


def provided(values: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Arguments the client actually sent, without the ones left null."""
    return {key: value for key, value in dict(values or {}).items() if value is not None}


def pagination_args(pagination) -> Dict[str, Any]:
    values = provided(pagination)
    return {"page": values.get("page", 1), "limit": values.get("limit", 10)}


class Loaders:
    """Per-request memo of customers and products resolved for nested fields."""

    def __init__(self, services: Services):
        self.services = services
        self._customers: Dict[str, Optional[Dict[str, Any]]] = {}
        self._products: Dict[str, Optional[Dict[str, Any]]] = {}

    def customer(self, customer_id) -> Optional[Dict[str, Any]]:
        customer_id = str(customer_id)
        if customer_id not in self._customers:
            try:
                doc = self.services.customers.get_customer(customer_id)
                self._customers[customer_id] = CustomerOut.from_document(doc).model_dump(mode="json")
            except CustomerNotFound:
                self._customers[customer_id] = None
        return self._customers[customer_id]

    def prime_products(self, product_ids: Iterable[str]) -> None:
        missing = {str(pid) for pid in product_ids} - set(self._products)
        if not missing:
            return
        found = self.services.products.get_many(missing)
        for product_id in missing:
            doc = found.get(product_id)
            self._products[product_id] = ProductOut.from_document(doc).model_dump(mode="json") if doc else None

    def product(self, product_id) -> Optional[Dict[str, Any]]:
        product_id = str(product_id)
        if product_id not in self._products:
            try:
                doc = self.services.products.get_product(product_id)
                self._products[product_id] = ProductOut.from_document(doc).model_dump(mode="json")
            except ProductNotFound:
                self._products[product_id] = None
        return self._products[product_id]


def _services(info) -> Services:
    return info.context["services"]


def _loaders(info) -> Loaders:
    return info.context["loaders"]


def customer_view(doc):
    return CustomerOut.from_document(doc).model_dump(mode="json")


def product_view(doc):
    return ProductOut.from_document(doc).model_dump(mode="json")


def order_view(doc):
    return OrderOut.from_document(doc).model_dump(mode="json")


# Types

class AddressType(graphene.ObjectType):
    class Meta:
        name = "Address"

    street = graphene.String()
    city = graphene.String()
    state = graphene.String()
    zip_code = graphene.String()
    country = graphene.String()


class ProductType(graphene.ObjectType):
    class Meta:
        name = "Product"

    id = graphene.ID(required=True)
    name = graphene.String(required=True)
    description = graphene.String(required=True)
    price = graphene.Float(required=True)
    category = graphene.String(required=True)
    inventory = graphene.Int(required=True)
    image_url = graphene.String()
    created_at = graphene.String()
    updated_at = graphene.String()


class ShippingEventType(graphene.ObjectType):
    class Meta:
        name = "ShippingEvent"

    date = graphene.String()
    status = graphene.String()
    location = graphene.String()
    description = graphene.String()


class ShippingInfoType(graphene.ObjectType):
    class Meta:
        name = "ShippingInfo"

    tracking_id = graphene.String()
    carrier = graphene.String()
    status = graphene.String()
    estimated_delivery = graphene.String()
    history = graphene.List(ShippingEventType)

    @staticmethod
    def resolve_tracking_id(root, info):
        return root.get("tracking_number")


class OrderItemType(graphene.ObjectType):
    class Meta:
        name = "OrderItem"

    product_id = graphene.ID(required=True)
    product = graphene.Field(ProductType)
    quantity = graphene.Int(required=True)
    price = graphene.Float(required=True)

    @staticmethod
    def resolve_product(root, info):
        return _loaders(info).product(root["product_id"])


class RecommendationType(graphene.ObjectType):
    class Meta:
        name = "Recommendation"

    product = graphene.Field(ProductType, required=True)
    score = graphene.Float()
    reason = graphene.String()


def recommendation_view(entry):
    return {"product": product_view(entry["product"]), "score": entry["score"], "reason": entry["reason"]}


class OrderType(graphene.ObjectType):
    class Meta:
        name = "Order"

    id = graphene.ID(required=True)
    customer = graphene.Field(lambda: CustomerType)
    order_date = graphene.String()
    status = graphene.String(required=True)
    items = graphene.List(graphene.NonNull(OrderItemType), required=True)
    shipping_address = graphene.Field(AddressType)
    total_amount = graphene.Float(required=True)
    tracking_number = graphene.String()
    tracking = graphene.Field(ShippingInfoType)
    created_at = graphene.String()
    updated_at = graphene.String()

    @staticmethod
    def resolve_customer(root, info):
        return _loaders(info).customer(root["customer_id"])

    @staticmethod
    def resolve_items(root, info):
        _loaders(info).prime_products(item["product_id"] for item in root["items"])
        return root["items"]

    @staticmethod
    @translate_errors
    def resolve_tracking(root, info):
        result = _services(info).tracking.get_tracking(root["id"])
        return result["tracking"] if result else None


class CustomerType(graphene.ObjectType):
    class Meta:
        name = "Customer"

    id = graphene.ID(required=True)
    name = graphene.String(required=True)
    email = graphene.String(required=True)
    address = graphene.Field(AddressType)
    phone = graphene.String()
    orders = graphene.List(OrderType)
    recommendations = graphene.List(ProductType, limit=graphene.Int())
    created_at = graphene.String()
    updated_at = graphene.String()

    @staticmethod
    @translate_errors
    def resolve_orders(root, info):
        page = _services(info).orders.list_customer_orders(root["id"], page=1, limit=100)
        return [order_view(doc) for doc in page.items]

    @staticmethod
    @translate_errors
    def resolve_recommendations(root, info, limit=None):
        entries = _services(info).recommendations.get_recommendations(root["id"], limit)
        return [product_view(entry["product"]) for entry in entries]


class PaginatedCustomers(graphene.ObjectType):
    customers = graphene.List(graphene.NonNull(CustomerType), required=True)
    total_count = graphene.Int(required=True)
    has_more = graphene.Boolean(required=True)


class PaginatedProducts(graphene.ObjectType):
    products = graphene.List(graphene.NonNull(ProductType), required=True)
    total_count = graphene.Int(required=True)
    has_more = graphene.Boolean(required=True)


class PaginatedOrders(graphene.ObjectType):
    orders = graphene.List(graphene.NonNull(OrderType), required=True)
    total_count = graphene.Int(required=True)
    has_more = graphene.Boolean(required=True)


# Inputs

class AddressInput(graphene.InputObjectType):
    street = graphene.String()
    city = graphene.String()
    state = graphene.String()
    zip_code = graphene.String()
    country = graphene.String()


class OrderItemInput(graphene.InputObjectType):
    product_id = graphene.ID(required=True)
    quantity = graphene.Int(required=True)


class ProductFilterInput(graphene.InputObjectType):
    category = graphene.String()
    min_price = graphene.Float()
    max_price = graphene.Float()
    search = graphene.String()


class OrderFilterInput(graphene.InputObjectType):
    status = graphene.String()
    start_date = graphene.String()
    end_date = graphene.String()


class PaginationInput(graphene.InputObjectType):
    page = graphene.Int()
    limit = graphene.Int()


# Root types

class Query(graphene.ObjectType):
    customer = graphene.Field(CustomerType, id=graphene.ID(required=True))
    customers = graphene.Field(PaginatedCustomers, pagination=PaginationInput())
    product = graphene.Field(ProductType, id=graphene.ID(required=True))
    products = graphene.Field(PaginatedProducts, filter=ProductFilterInput(), pagination=PaginationInput())
    order = graphene.Field(OrderType, id=graphene.ID(required=True))
    orders = graphene.Field(PaginatedOrders, filter=OrderFilterInput(), pagination=PaginationInput())
    customer_orders = graphene.Field(
        PaginatedOrders, customer_id=graphene.ID(required=True), pagination=PaginationInput()
    )
    order_tracking = graphene.Field(ShippingInfoType, order_id=graphene.ID(required=True))
    customer_recommendations = graphene.List(
        RecommendationType, customer_id=graphene.ID(required=True), limit=graphene.Int()
    )

    @staticmethod
    @translate_errors
    def resolve_customer(root, info, id):
        return customer_view(_services(info).customers.get_customer(id))

    @staticmethod
    @translate_errors
    def resolve_customers(root, info, pagination=None):
        page = _services(info).customers.list_customers(**pagination_args(pagination))
        return PaginatedCustomers(
            customers=[customer_view(doc) for doc in page.items],
            total_count=page.total,
            has_more=page.has_more,
        )

    @staticmethod
    @translate_errors
    def resolve_product(root, info, id):
        return product_view(_services(info).products.get_product(id))

    @staticmethod
    @translate_errors
    def resolve_products(root, info, filter=None, pagination=None):
        page = _services(info).products.list_products(**pagination_args(pagination), **provided(filter))
        return PaginatedProducts(
            products=[product_view(doc) for doc in page.items],
            total_count=page.total,
            has_more=page.has_more,
        )

    @staticmethod
    @translate_errors
    def resolve_order(root, info, id):
        return order_view(_services(info).orders.get_order(id))

    @staticmethod
    @translate_errors
    def resolve_orders(root, info, filter=None, pagination=None):
        page = _services(info).orders.list_orders(**pagination_args(pagination), **provided(filter))
        return PaginatedOrders(
            orders=[order_view(doc) for doc in page.items],
            total_count=page.total,
            has_more=page.has_more,
        )

    @staticmethod
    @translate_errors
    def resolve_customer_orders(root, info, customer_id, pagination=None):
        page = _services(info).orders.list_customer_orders(customer_id, **pagination_args(pagination))
        return PaginatedOrders(
            orders=[order_view(doc) for doc in page.items],
            total_count=page.total,
            has_more=page.has_more,
        )

    @staticmethod
    @translate_errors
    def resolve_order_tracking(root, info, order_id):
        result = _services(info).tracking.get_tracking(order_id)
        return result["tracking"] if result else None

    @staticmethod
    @translate_errors
    def resolve_customer_recommendations(root, info, customer_id, limit=None):
        entries = _services(info).recommendations.get_recommendations(customer_id, limit)
        return [recommendation_view(entry) for entry in entries]


class Mutation(graphene.ObjectType):
    create_customer = graphene.Field(
        CustomerType,
        name=graphene.String(required=True),
        email=graphene.String(required=True),
        phone=graphene.String(),
        address=AddressInput(),
    )
    update_customer = graphene.Field(
        CustomerType,
        id=graphene.ID(required=True),
        name=graphene.String(),
        email=graphene.String(),
        phone=graphene.String(),
        address=AddressInput(),
    )
    delete_customer = graphene.Boolean(id=graphene.ID(required=True))

    create_product = graphene.Field(
        ProductType,
        name=graphene.String(required=True),
        args={"description": graphene.String(required=True)},
        price=graphene.Float(required=True),
        category=graphene.String(required=True),
        inventory=graphene.Int(),
        image_url=graphene.String(),
    )
    update_product = graphene.Field(
        ProductType,
        id=graphene.ID(required=True),
        name=graphene.String(),
        args={"description": graphene.String()},
        price=graphene.Float(),
        category=graphene.String(),
        image_url=graphene.String(),
        inventory_adjustment=graphene.Int(),
    )
    delete_product = graphene.Boolean(id=graphene.ID(required=True))

    create_order = graphene.Field(
        OrderType,
        customer_id=graphene.ID(required=True),
        items=graphene.List(graphene.NonNull(OrderItemInput), required=True),
        shipping_address=AddressInput(),
    )
    update_order_status = graphene.Field(OrderType, id=graphene.ID(required=True), status=graphene.String(required=True))
    update_order_shipping = graphene.Field(
        OrderType, id=graphene.ID(required=True), shipping_address=AddressInput(required=True)
    )
    cancel_order = graphene.Field(OrderType, id=graphene.ID(required=True))

    @staticmethod
    @translate_errors
    def resolve_create_customer(root, info, **args):
        payload = validate(Customer, provided(args))
        return customer_view(_services(info).customers.create_customer(payload))

    @staticmethod
    @translate_errors
    def resolve_update_customer(root, info, id, **args):
        payload = validate(CustomerUpdate, provided(args))
        return customer_view(_services(info).customers.update_customer(id, payload))

    @staticmethod
    @translate_errors
    def resolve_delete_customer(root, info, id):
        return _services(info).customers.delete_customer(id)

    @staticmethod
    @translate_errors
    def resolve_create_product(root, info, **args):
        payload = validate(Product, provided(args))
        return product_view(_services(info).products.create_product(payload))

    @staticmethod
    @translate_errors
    def resolve_update_product(root, info, id, **args):
        payload = validate(ProductUpdate, provided(args))
        return product_view(_services(info).products.update_product(id, payload))

    @staticmethod
    @translate_errors
    def resolve_delete_product(root, info, id):
        return _services(info).products.delete_product(id)

    @staticmethod
    @translate_errors
    def resolve_create_order(root, info, customer_id, items, shipping_address=None):
        payload = validate(OrderCreate, {
            "items": [provided(item) for item in items],
            "shipping_address": provided(shipping_address) if shipping_address is not None else None,
        })
        return order_view(_services(info).orders.create_order(customer_id, payload))

    @staticmethod
    @translate_errors
    def resolve_update_order_status(root, info, id, status):
        return order_view(_services(info).orders.update_status(id, status))

    @staticmethod
    @translate_errors
    def resolve_update_order_shipping(root, info, id, shipping_address):
        address = validate(Address, provided(shipping_address))
        return order_view(_services(info).orders.update_shipping_address(id, address))

    @staticmethod
    @translate_errors
    def resolve_cancel_order(root, info, id):
        return order_view(_services(info).orders.cancel_order(id))


schema = graphene.Schema(query=Query, mutation=Mutation)


# Endpoint

class GraphQLRequest(BaseModel):
    query: str
    variables: Optional[Dict[str, Any]] = None
    operation_name: Optional[str] = Field(None, alias="operationName")


router = APIRouter()


def execute(services: Services, query: str, variables: Optional[Dict[str, Any]] = None, operation_name: Optional[str] = None) -> Dict[str, Any]:
    result = schema.execute(
        query,
        variable_values=variables,
        operation_name=operation_name,
        context_value={"services": services, "loaders": Loaders(services)},
    )
    response: Dict[str, Any] = {"data": result.data}
    if result.errors:
        response["errors"] = [error.formatted for error in result.errors]
    return response


@router.post("/graphql")
def graphql_endpoint(request: GraphQLRequest, services: Services = Depends(get_services)):
    return execute(services, request.query, request.variables, request.operation_name)
