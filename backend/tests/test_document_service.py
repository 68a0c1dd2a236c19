# Overview: Pytest coverage for atomic document numbering.

from purchasing.models import DocumentSequence
from purchasing.services import document_service


class TestNextDocumentNumber:
    def test_first_use_creates_the_sequence(self, db_session):
        first = document_service.next_document_number(document_type="purchase_return", prefix="PR-")
        second = document_service.next_document_number(document_type="purchase_return", prefix="PR-")
        db_session.commit()

        assert (first, second) == ("PR-000001", "PR-000002")
        assert db_session.query(DocumentSequence).one().next_number == 3

    def test_types_are_numbered_independently(self, db_session):
        document_service.next_document_number(document_type="purchase_return", prefix="PR-")
        other = document_service.next_document_number(document_type="debit_note", prefix="DN-", pad=4)

        assert other == "DN-0001"

    def test_uncommitted_number_is_released_on_rollback(self, db_session):
        document_service.next_document_number(document_type="purchase_return", prefix="PR-")
        db_session.commit()
        document_service.next_document_number(document_type="purchase_return", prefix="PR-")
        db_session.rollback()

        again = document_service.next_document_number(document_type="purchase_return", prefix="PR-")

        assert again == "PR-000002"
