import pytest

from shopify_api.models.order import ShopifyOrder


@pytest.mark.asyncio
async def test_upsert_creates_then_updates_single_record(order_store, order_node) -> None:
    node = order_node(1)

    first = await order_store.upsert_orders([node])
    second = await order_store.upsert_orders([node])

    assert (first.created, first.updated, first.errors) == (1, 0, 0)
    assert (second.created, second.updated, second.errors) == (0, 1, 0)
    orders = await order_store.get_all_orders()
    assert len(orders) == 1


@pytest.mark.asyncio
async def test_upsert_flattens_nested_shopify_shapes(order_store, order_node) -> None:
    node = order_node(
        2,
        fulfillments=[{
            "inTransitAt": "2024-01-05T00:00:00Z",
            "deliveredAt": None,
            "trackingInfo": [{"number": "TRK9"}],
            "displayStatus": "IN_TRANSIT",
            "events": {"nodes": [{"status": "IN_TRANSIT", "message": "On the way"}]},
        }],
    )
    await order_store.upsert_orders([node])

    stored = await order_store.get_order(node["id"])
    assert stored.name == "#1002"
    assert stored.legacy_resource_id == "5002"
    assert stored.customer == {
        "email": "customer2@example.com",
        "phone": "+447000000002",
        "display_name": "Customer 2",
    }
    assert stored.fulfillments[0]["tracking_info"] == [{"number": "TRK9"}]
    assert stored.fulfillments[0]["events"] == [{"status": "IN_TRANSIT", "message": "On the way"}]
    assert stored.airtable_record_id is None


@pytest.mark.asyncio
async def test_upstream_upsert_keeps_airtable_reference(order_store, order_node) -> None:
    node = order_node(3)
    await order_store.upsert_orders([node])
    assert await order_store.set_airtable_reference("5003", "recXYZ", "ORDERS") is True

    changed = dict(node, displayFinancialStatus="REFUNDED")
    await order_store.upsert_order(ShopifyOrder.model_validate(changed))

    stored = await order_store.get_order(node["id"])
    assert stored.display_financial_status == "REFUNDED"
    assert stored.airtable_record_id == "recXYZ"
    assert stored.airtable_table_name == "ORDERS"

    as_dict = stored.to_dict()
    assert as_dict["shopify_id"] == node["id"]
    assert as_dict["airtable_record_id"] == "recXYZ"
    assert as_dict["display_financial_status"] == "REFUNDED"


@pytest.mark.asyncio
async def test_bad_record_does_not_abort_batch(order_store, order_node) -> None:
    bad = {"name": "#broken"}  # no id
    summary = await order_store.upsert_orders([order_node(1), bad, order_node(2)])

    assert summary.created == 2
    assert summary.errors == 1
    assert summary.errors_list[0]["order_name"] == "#broken"
    assert summary.errors_list[0]["order_id"] is None
    assert len(await order_store.get_all_orders()) == 2


@pytest.mark.asyncio
async def test_set_reference_for_unknown_order(order_store) -> None:
    assert await order_store.set_airtable_reference("999", "recNOPE") is False


@pytest.mark.asyncio
async def test_health_check(order_store) -> None:
    assert await order_store.health_check() is True
