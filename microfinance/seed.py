"""
Demo data for a fresh installation: eight customers, three personal loans,
the five-member Sahara Group and an admin account.
"""

from typing import Dict, List

from .logging_config import get_logger
from .storage import CollectionStore


logger = get_logger("microfinance.seed")

PLACEHOLDER = "https://placehold.co/100x100"

DEMO_CUSTOMERS = [
    {"id": "CUST001", "name": "Ravi Kumar", "email": "ravi.kumar@example.com", "phone": "9876543210",
     "address": "123, MG Road, Bangalore", "idType": "Aadhaar Card", "idNumber": "1234 5678 9012",
     "occupation": "Software Engineer", "monthlyIncome": 80000, "registrationDate": "2023-01-15"},
    {"id": "CUST002", "name": "Priya Sharma", "email": "priya.sharma@example.com", "phone": "8765432109",
     "address": "456, Main Street, Mumbai", "idType": "PAN Card", "idNumber": "ABCDE1234F",
     "occupation": "Graphic Designer", "monthlyIncome": 65000, "registrationDate": "2023-02-20"},
    {"id": "CUST003", "name": "Amit Singh", "email": "amit.singh@example.com", "phone": "7654321098",
     "address": "789, Park Avenue, Delhi", "idType": "Voter ID", "idNumber": "XYZ1234567",
     "occupation": "Marketing Manager", "monthlyIncome": 95000, "registrationDate": "2023-03-10"},
    {"id": "CUST004", "name": "Sunita Devi", "email": "sunita.devi@example.com", "phone": "6543210987",
     "address": "101, Civil Lines, Pune", "idType": "Aadhaar Card", "idNumber": "9876 5432 1098",
     "occupation": "Teacher", "monthlyIncome": 50000, "registrationDate": "2023-04-05"},
    {"id": "CUST005", "name": "Rajesh Verma", "email": "rajesh.verma@example.com", "phone": "5432109876",
     "address": "202, JVPD Scheme, Mumbai", "idType": "PAN Card", "idNumber": "FGHIJ5678K",
     "occupation": "Businessman", "monthlyIncome": 120000, "registrationDate": "2023-05-12"},
    {"id": "CUST006", "name": "Anita Desai", "email": "anita.desai@example.com", "phone": "4321098765",
     "address": "303, Koramangala, Bangalore", "idType": "Voter ID", "idNumber": "LMN8765432",
     "occupation": "Doctor", "monthlyIncome": 150000, "registrationDate": "2023-06-18"},
    {"id": "CUST007", "name": "Sanjay Gupta", "email": "sanjay.gupta@example.com", "phone": "3210987654",
     "address": "404, Salt Lake, Kolkata", "idType": "Aadhaar Card", "idNumber": "8765 4321 0987",
     "occupation": "Architect", "monthlyIncome": 110000, "registrationDate": "2023-07-22"},
    {"id": "CUST008", "name": "Meena Kumari", "email": "meena.kumari@example.com", "phone": "2109876543",
     "address": "505, Anna Nagar, Chennai", "idType": "Bank Passbook", "idNumber": "9988776655",
     "occupation": "Homemaker", "monthlyIncome": 25000, "registrationDate": "2023-08-01"},
]

DEMO_LOANS = [
    {"id": "LOAN001", "customerId": "CUST001", "customerName": "Ravi Kumar", "loanType": "Personal",
     "amount": 50000, "interestRate": 12, "term": 10, "status": "Active", "disbursalDate": "2023-05-01",
     "weeklyRepayment": 5000, "totalPaid": 25000, "outstandingAmount": 25000,
     "collectionFrequency": "Weekly"},
    {"id": "LOAN002", "customerId": "CUST002", "customerName": "Priya Sharma", "loanType": "Personal",
     "amount": 25000, "interestRate": 20, "term": 70, "status": "Overdue", "disbursalDate": "2023-06-15",
     "weeklyRepayment": 357.14, "totalPaid": 10000, "outstandingAmount": 15000,
     "collectionFrequency": "Daily"},
    {"id": "LOAN003", "customerId": "CUST003", "customerName": "Amit Singh", "loanType": "Personal",
     "amount": 100000, "interestRate": 12, "term": 10, "status": "Closed", "disbursalDate": "2022-01-20",
     "weeklyRepayment": 10000, "totalPaid": 100000, "outstandingAmount": 0,
     "collectionFrequency": "Weekly"},
]

SAHARA_MEMBERS = [
    ("LOAN004", "CUST004", "Sunita Devi"),
    ("LOAN005", "CUST005", "Rajesh Verma"),
    ("LOAN006", "CUST006", "Anita Desai"),
    ("LOAN007", "CUST007", "Sanjay Gupta"),
    ("LOAN008", "CUST008", "Meena Kumari"),
]

DEMO_USERS = [
    {"id": "USR001", "username": "admin", "password": "password", "role": "Admin"},
]


def demo_loans() -> List[Dict]:
    loans = [dict(loan) for loan in DEMO_LOANS]
    for loan_id, customer_id, name in SAHARA_MEMBERS:
        loans.append({
            "id": loan_id, "customerId": customer_id, "customerName": name,
            "groupName": "Sahara Group", "groupId": "GRP001", "groupLeaderName": "Suresh Patel",
            "loanType": "Group", "amount": 40000, "interestRate": 18, "term": 40, "status": "Active",
            "disbursalDate": "2023-07-01", "weeklyRepayment": 1000, "totalPaid": 12000,
            "outstandingAmount": 28000,
        })
    return loans


def seed_demo_data(storage: CollectionStore, profile_picture: str = PLACEHOLDER) -> List[str]:
    """
    Write the demo collections that do not exist yet.

    Returns:
        Names of the collections that were written
    """
    documents = {
        "customers": [dict(c, profilePicture=profile_picture) for c in DEMO_CUSTOMERS],
        "loans": demo_loans(),
        "users": [dict(u) for u in DEMO_USERS],
        "collections": [],
        "userActivities": [],
        "financials": {"investments": [], "expenses": []},
    }
    written = []
    with storage.atomic():
        for name, document in documents.items():
            if not storage.exists(name):
                storage.write(name, document)
                written.append(name)
    if written:
        logger.info(f"Seeded demo collections: {', '.join(written)}")
    return written
