"""
Test suite for customer registration and portal credentials
"""

import pytest
from datetime import date

from microfinance.customers import DEFAULT_PROFILE_PICTURE, CustomerManager
from microfinance.errors import ValidationError
from microfinance.seed import seed_demo_data
from microfinance.storage import InMemoryStore


@pytest.fixture
def storage():
    return InMemoryStore()


@pytest.fixture
def customer_manager(storage):
    return CustomerManager(storage)


class TestCustomerRegistration:
    """Test creating customers"""

    def test_first_customer_id(self, customer_manager):
        customer = customer_manager.create_customer({"name": "Ravi Kumar"})
        assert customer.id == "CUST001"

    def test_ids_follow_highest_suffix(self, storage, customer_manager):
        seed_demo_data(storage)
        customer = customer_manager.create_customer({"name": "Lakshmi Rao"})
        assert customer.id == "CUST009"

    def test_client_id_kept_when_free(self, customer_manager):
        customer = customer_manager.create_customer({"id": "CUST050", "name": "Ravi"})
        assert customer.id == "CUST050"
        assert customer_manager.create_customer({"name": "Priya"}).id == "CUST051"

    def test_duplicate_client_id_regenerated(self, customer_manager):
        customer_manager.create_customer({"id": "CUST001", "name": "Ravi"})
        second = customer_manager.create_customer({"id": "CUST001", "name": "Priya"})
        assert second.id == "CUST002"
        assert len(customer_manager.list_customers()) == 2

    def test_defaults_applied(self, customer_manager):
        customer = customer_manager.create_customer(
            {"name": "Ravi"}, registration_date=date(2024, 5, 1)
        )
        assert customer.registration_date == date(2024, 5, 1)
        assert customer.profile_picture == DEFAULT_PROFILE_PICTURE

    def test_registration_date_defaults_to_today(self, customer_manager):
        customer = customer_manager.create_customer({"name": "Ravi"})
        assert customer.registration_date == date.today()

    def test_payload_fields_and_extras_stored(self, customer_manager):
        customer = customer_manager.create_customer({
            "name": "Ravi", "idType": "PAN Card", "idNumber": "ABCDE1234F",
            "monthlyIncome": 80000, "gender": "Male", "secondaryPhone": "999",
            "profilePicture": "https://example.com/ravi.png",
        })
        stored = customer_manager.get_customer(customer.id).to_dict()
        assert stored["monthlyIncome"] == 80000
        assert stored["gender"] == "Male"
        assert stored["secondaryPhone"] == "999"
        assert stored["profilePicture"] == "https://example.com/ravi.png"

    def test_name_required(self, customer_manager):
        with pytest.raises(ValidationError):
            customer_manager.create_customer({"email": "x@example.com"})

    def test_unknown_id_type_rejected(self, customer_manager):
        with pytest.raises(ValidationError):
            customer_manager.create_customer({"name": "Ravi", "idType": "Library Card"})

    def test_get_missing_customer(self, customer_manager):
        assert customer_manager.get_customer("CUST404") is None


class TestPortalCredentials:
    """Test the name plus id number check"""

    @pytest.fixture
    def seeded(self, storage, customer_manager):
        seed_demo_data(storage)
        return customer_manager

    def test_exact_match(self, seeded):
        customer = seeded.authenticate_customer("Ravi Kumar", "1234 5678 9012")
        assert customer.id == "CUST001"

    def test_case_and_spacing_ignored(self, seeded):
        assert seeded.authenticate_customer("ravi kumar", "123456789012").id == "CUST001"
        assert seeded.authenticate_customer("PRIYA SHARMA", "abcde1234f").id == "CUST002"

    def test_wrong_id_number(self, seeded):
        assert seeded.authenticate_customer("Ravi Kumar", "ABCDE1234F") is None

    def test_missing_credentials(self, seeded):
        assert seeded.authenticate_customer("", "1234") is None
        assert seeded.authenticate_customer("Ravi Kumar", None) is None
