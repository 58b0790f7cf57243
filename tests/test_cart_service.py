import pytest

from errors import InvalidArgument, InvalidState, NotFound
from repositories.cart_repository import CartRepository


class TestAddItem:
    def test_first_add_creates_cart(self, cart_service, make_product):
        product = make_product(price_minor=1250, name="Lamp")

        cart = cart_service.add_item("alice", product.id, 2)

        assert cart["id"]
        assert cart["user_id"] == "alice"
        assert cart["currency"] == "USD"
        assert cart["total_minor"] == 2500
        assert cart["items"] == [{
            "id": cart["items"][0]["id"],
            "product_id": product.id,
            "product_name": "Lamp",
            "price_minor": 1250,
            "currency": "USD",
            "qty": 2,
            "subtotal_minor": 2500,
        }]

    def test_adding_same_product_merges_quantity(self, cart_service, make_product):
        product = make_product()

        cart_service.add_item("alice", product.id, 2)
        cart = cart_service.add_item("alice", product.id, 3)

        assert len(cart["items"]) == 1
        assert cart["items"][0]["qty"] == 5

    def test_cart_is_per_user(self, cart_service, make_product):
        product = make_product()
        cart_service.add_item("alice", product.id, 1)

        assert cart_service.get_cart("bob")["items"] == []

    def test_unknown_product(self, cart_service):
        with pytest.raises(NotFound):
            cart_service.add_item("alice", "no-such-product", 1)

    @pytest.mark.parametrize("qty", [0, -1])
    def test_quantity_must_be_positive(self, cart_service, make_product, qty):
        product = make_product()

        with pytest.raises(InvalidArgument):
            cart_service.add_item("alice", product.id, qty)

    def test_mixed_currencies_rejected(self, cart_service, make_product):
        dollars = make_product(currency="USD")
        euros = make_product(currency="EUR")
        cart_service.add_item("alice", dollars.id, 1)

        with pytest.raises(InvalidState):
            cart_service.add_item("alice", euros.id, 1)
        assert len(cart_service.get_cart("alice")["items"]) == 1

    def test_adding_does_not_reserve_stock(self, cart_service, product_service, make_product):
        product = make_product(stock_qty=1)

        cart_service.add_item("alice", product.id, 5)

        assert product_service.get_product(product.id).stock_qty == 1

    def test_concurrent_first_adds_share_one_cart(self, cart_service, make_product, monkeypatch):
        product = make_product()
        original = CartRepository.find
        interfered = []

        def racing_find(self, owner_id):
            if not interfered:
                interfered.append(True)
                # Another request creates the cart after our lookup missed it
                cart_service.add_item("alice", product.id, 1)
                return None
            return original(self, owner_id)

        monkeypatch.setattr(CartRepository, "find", racing_find)

        cart = cart_service.add_item("alice", product.id, 2)

        assert len(cart["items"]) == 1
        assert cart["items"][0]["qty"] == 3


class TestChangeCart:
    def test_update_quantity(self, cart_service, make_product):
        product = make_product(price_minor=100)
        cart_service.add_item("alice", product.id, 1)

        cart = cart_service.update_item_quantity("alice", product.id, 4)

        assert cart["items"][0]["qty"] == 4
        assert cart["total_minor"] == 400

    def test_update_to_zero_removes_line(self, cart_service, make_product):
        product = make_product()
        cart_service.add_item("alice", product.id, 1)

        cart = cart_service.update_item_quantity("alice", product.id, 0)

        assert cart["items"] == []

    def test_update_missing_line(self, cart_service, make_product):
        product = make_product()
        other = make_product()
        cart_service.add_item("alice", product.id, 1)

        with pytest.raises(NotFound):
            cart_service.update_item_quantity("alice", other.id, 2)
        with pytest.raises(NotFound):
            cart_service.update_item_quantity("bob", product.id, 2)

    def test_remove_item(self, cart_service, make_product):
        first = make_product()
        second = make_product()
        cart_service.add_item("alice", first.id, 1)
        cart_service.add_item("alice", second.id, 1)

        cart = cart_service.remove_item("alice", first.id)

        assert [item["product_id"] for item in cart["items"]] == [second.id]
        with pytest.raises(NotFound):
            cart_service.remove_item("alice", first.id)

    def test_clear_cart(self, cart_service, make_product):
        product = make_product()
        cart_service.add_item("alice", product.id, 3)

        cart = cart_service.clear_cart("alice")

        assert cart["items"] == []
        assert cart["total_minor"] == 0
        assert cart_service.get_cart("alice")["id"] == cart["id"]

    def test_clear_missing_cart(self, cart_service):
        with pytest.raises(NotFound):
            cart_service.clear_cart("alice")
