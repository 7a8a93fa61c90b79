"""Load or remove demo data.

    python seed.py --import
    python seed.py --delete

Data goes through the services, so the stock consumed by the demo orders is
reserved like any other order.
"""

import argparse
import logging
import sys

from config import Settings, configure_logging
from database import CUSTOMERS, ORDERS, PRODUCTS, connect
from schemas import Customer, OrderCreate, OrderStatus, Product
from services import Services, build_services

logger = logging.getLogger(__name__)

CUSTOMERS_DATA = [
    {
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "phone": "555-0101",
        "address": {"street": "12 Analytical Way", "city": "London", "zip_code": "N1 9GU", "country": "UK"},
    },
    {
        "name": "Grace Hopper",
        "email": "grace@example.com",
        "phone": "555-0102",
        "address": {"street": "1 Compiler Ct", "city": "Arlington", "state": "VA", "zip_code": "22201", "country": "USA"},
    },
    {
        "name": "Alan Turing",
        "email": "alan@example.com",
        "address": {"street": "7 Bletchley Rd", "city": "Milton Keynes", "zip_code": "MK3 6EB", "country": "UK"},
    },
]

PRODUCTS_DATA = [
    {"name": "Classic Tee", "description": "Cotton crew-neck t-shirt", "price": "19.99", "category": "Apparel", "inventory": 120},
    {"name": "Denim Jacket", "description": "Stonewashed denim jacket", "price": "79.50", "category": "Apparel", "inventory": 35},
    {"name": "Running Shoes", "description": "Lightweight trail runners", "price": "99.00", "category": "Footwear", "inventory": 50},
    {"name": "Canvas Sneakers", "description": "Everyday low-top sneakers", "price": "49.95", "category": "Footwear", "inventory": 80},
    {"name": "Leather Belt", "description": "Full-grain leather belt", "price": "34.00", "category": "Accessories", "inventory": 60},
    {"name": "Wool Beanie", "description": "Merino wool beanie", "price": "24.99", "category": "Accessories", "inventory": 0},
]

# (customer index, [(product index, quantity)], final status)
ORDERS_DATA = [
    (0, [(0, 2), (4, 1)], OrderStatus.DELIVERED),
    (0, [(2, 1)], OrderStatus.SHIPPED),
    (1, [(1, 1), (3, 2)], OrderStatus.PROCESSING),
    (2, [(0, 1)], OrderStatus.PENDING),
]


def import_data(services: Services) -> None:
    customers = [services.customers.create_customer(Customer(**data)) for data in CUSTOMERS_DATA]
    products = [services.products.create_product(Product(**data)) for data in PRODUCTS_DATA]

    for customer_index, lines, status in ORDERS_DATA:
        customer = customers[customer_index]
        payload = OrderCreate(
            items=[{"product_id": str(products[i]["_id"]), "quantity": qty} for i, qty in lines],
            shipping_address=customer.get("address"),
        )
        order = services.orders.create_order(str(customer["_id"]), payload)
        if status is not OrderStatus.PENDING:
            services.orders.update_status(str(order["_id"]), status)

    logger.info(
        "Imported %d customers, %d products, %d orders", len(customers), len(products), len(ORDERS_DATA)
    )


def delete_data(services: Services) -> None:
    for name in (ORDERS, PRODUCTS, CUSTOMERS):
        result = services.db[name].delete_many({})
        logger.info("Deleted %d documents from %s", result.deleted_count, name)
    services.cache.clear()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Load or remove storefront demo data")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--import", dest="action", action="store_const", const="import", help="load demo data")
    group.add_argument("--delete", dest="action", action="store_const", const="delete", help="remove all data")
    args = parser.parse_args(argv)

    settings = Settings()
    configure_logging(settings.log_level)
    services = build_services(connect(settings), settings)
    try:
        if args.action == "import":
            import_data(services)
        else:
            delete_data(services)
    except Exception:
        logger.exception("Seeding failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
