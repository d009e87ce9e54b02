import re
from datetime import date

from incident_desk.schemas.ticket import TicketRecord
from incident_desk.services.identifiers import IdentifierGenerator

TODAY = date(2025, 10, 1)


def test_id_format(record_store, ticket_mirror):
    generator = IdentifierGenerator(record_store, ticket_mirror.path)

    ticket_id = generator.generate("Network", "LOS1", today=TODAY)

    assert ticket_id == "KASI-LOS1-20251001-NET-0001"
    assert re.fullmatch(r"KASI-[A-Z0-9]+-\d{8}-[A-Z]{2,4}-\d{4}", ticket_id)


def test_unknown_building_and_category_fall_back(record_store, ticket_mirror):
    generator = IdentifierGenerator(record_store, ticket_mirror.path)

    assert generator.generate("Plumbing", "HQ", today=TODAY) == "KASI-LOS5-20251001-GEN-0001"
    assert generator.generate("Access Control", "LOS3", today=TODAY) == "KASI-LOS3-20251001-AC-0001"


def test_generation_has_no_side_effect(record_store, ticket_mirror):
    generator = IdentifierGenerator(record_store, ticket_mirror.path)

    assert generator.generate("Power", "LOS2", today=TODAY) == generator.generate("Power", "LOS2", today=TODAY)


def test_sequence_counts_only_the_same_category(record_store, ticket_mirror):
    generator = IdentifierGenerator(record_store, ticket_mirror.path)
    record_store.create(TicketRecord(ticket_id="A", category="Network"))
    record_store.create(TicketRecord(ticket_id="B", category="Network"))
    record_store.create(TicketRecord(ticket_id="C", category="Server"))

    assert generator.generate("Network", "LOS1", today=TODAY).endswith("-NET-0003")
    assert generator.generate("Server", "LOS1", today=TODAY).endswith("-SER-0002")


def test_store_failure_counts_csv_rows(offline_store, ticket_mirror):
    for ticket_id, category in (("A", "Network"), ("B", "Power"), ("C", "Network")):
        ticket_mirror.append({"ticket_id": ticket_id, "category": category})
    generator = IdentifierGenerator(offline_store, ticket_mirror.path)

    assert generator.generate("Network", "LOS1", today=TODAY) == "KASI-LOS1-20251001-NET-0003"


def test_csv_without_category_column_counts_zero(offline_store, tmp_path):
    path = tmp_path / "tickets.csv"
    path.write_text('"ticket_id","building"\n"A","LOS1"\n', encoding="utf-8")
    generator = IdentifierGenerator(offline_store, path)

    assert generator.generate("Network", "LOS1", today=TODAY).endswith("-0001")


def test_missing_csv_counts_zero(offline_store, tmp_path):
    generator = IdentifierGenerator(offline_store, tmp_path / "absent.csv")

    assert generator.generate("Network", "LOS1", today=TODAY).endswith("-0001")
