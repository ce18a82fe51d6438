"""
Demo Event Publisher

Publishes a small order lifecycle (created, confirmed, paid, shipped, and a
few cancellations) to the order and payment topics, with a share of
duplicates to exercise deduplication.

    python scripts/publish_events.py --orders 50 --duplicates-ratio 0.2
"""

import argparse
import asyncio
import json
import random
import uuid
from typing import Any, Dict, List, Tuple

from aiokafka import AIOKafkaProducer

from order_analytics.config import get_settings

PRODUCTS = {
    1: 29.99,
    2: 49.99,
    3: 15.00,
    4: 89.50,
}


def _parse_args() -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Publish demo order events to Kafka")
    parser.add_argument("--bootstrap-servers", default=settings.kafka.bootstrap_servers)
    parser.add_argument("--orders", type=int, default=20, help="Number of orders to simulate")
    parser.add_argument("--start-order-id", type=int, default=1)
    parser.add_argument(
        "--duplicates-ratio",
        type=float,
        default=0.1,
        help="Share of messages sent twice (0-1)",
    )
    parser.add_argument("--seed", type=int, default=42)
    return parser.parse_args()


def order_lifecycle(order_id: int, rng: random.Random) -> List[Tuple[str, Dict[str, Any]]]:
    """Return (topic_kind, event) pairs for one order"""
    items = [
        {"productId": product_id, "quantity": rng.randint(1, 3), "price": price}
        for product_id, price in rng.sample(sorted(PRODUCTS.items()), k=rng.randint(1, 3))
    ]
    total = round(sum(item["price"] * item["quantity"] for item in items), 2)
    user_id = rng.randint(1, 500)

    def event(event_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return {"type": event_type, "orderId": order_id, "userId": user_id, "data": data}

    events = [
        ("orders", event("order.created", {"items": items, "totalAmount": total})),
    ]
    if rng.random() < 0.1:
        events.append(("payments", event("payment.failed", {"reason": "card_declined"})))
        events.append(("orders", event("order.cancelled", {"totalAmount": total})))
        return events

    events.append(("payments", event("payment.authorized", {"amount": total})))
    events.append(("orders", event("order.confirmed", {"items": items, "totalAmount": total})))
    if rng.random() < 0.7:
        events.append(("orders", event("order.shipped", {})))
    return events


async def publish(args: argparse.Namespace) -> None:
    settings = get_settings()
    topics = {"orders": settings.kafka.topics_orders, "payments": settings.kafka.topics_payments}
    rng = random.Random(args.seed)

    producer = AIOKafkaProducer(
        bootstrap_servers=args.bootstrap_servers,
        value_serializer=lambda v: json.dumps(v).encode("utf-8"),
        key_serializer=lambda k: str(k).encode("utf-8"),
    )
    await producer.start()

    sent = duplicates = 0
    try:
        for order_id in range(args.start_order_id, args.start_order_id + args.orders):
            for kind, event in order_lifecycle(order_id, rng):
                headers = [("x-correlation-id", str(uuid.uuid4()).encode("utf-8"))]
                copies = 2 if rng.random() < args.duplicates_ratio else 1
                for _ in range(copies):
                    await producer.send_and_wait(topics[kind], event, key=order_id, headers=headers)
                sent += copies
                duplicates += copies - 1
    finally:
        await producer.stop()

    print(f"Published {sent} messages for {args.orders} orders ({duplicates} duplicates)")


if __name__ == "__main__":
    asyncio.run(publish(_parse_args()))
