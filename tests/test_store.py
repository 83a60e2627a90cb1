"""
Invoice model and store tests
"""

import json
import os

import pytest

from veilguard.models import Invoice, InvoiceStore, STATUS_CONFIRMING, STATUS_PAID, STATUS_PENDING
from veilguard.models.announcement import Announcement, MatchedAnnouncement, TransferLog


def make_invoice(stealth="0x" + "ab" * 20, amount="10"):
    return Invoice.create(
        chain_id=137,
        token="USDC",
        token_address="0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359",
        amount=amount,
        stealth_address=stealth,
        ephemeral_pub_key="0x04" + "00" * 64,
        view_tag="0x1f",
    )


class TestInvoice:
    """Tests for the invoice record."""

    def test_create_defaults(self):
        inv = make_invoice()
        assert inv.status == STATUS_PENDING
        assert inv.is_open
        assert len(inv.id) == len("inv-") + 12
        assert inv.format_amount() == "10 USDC"

    def test_lifecycle(self):
        inv = make_invoice()
        inv.mark_confirming("0x" + "11" * 32)
        assert inv.status == STATUS_CONFIRMING
        assert inv.is_open
        inv.mark_paid()
        assert inv.status == STATUS_PAID
        assert inv.tx_hash == "0x" + "11" * 32
        assert inv.paid_at is not None
        assert not inv.is_open

    def test_expire(self):
        inv = make_invoice()
        inv.mark_expired()
        assert not inv.is_open

    def test_invalid_status(self):
        inv = make_invoice()
        with pytest.raises(ValueError):
            inv.set_status("refunded")

    def test_from_dict_validates_status(self):
        data = make_invoice().to_dict()
        data["status"] = "bogus"
        with pytest.raises(ValueError):
            Invoice.from_dict(data)

    def test_dict_roundtrip(self):
        inv = make_invoice()
        assert Invoice.from_dict(inv.to_dict()) == inv


class TestInvoiceStore:
    """Tests for JSON persistence."""

    def test_add_and_reload(self, tmp_path):
        store = InvoiceStore(tmp_path)
        first = make_invoice(amount="1")
        second = make_invoice(amount="2")
        store.add(first)
        store.add(second)

        reloaded = InvoiceStore(tmp_path)
        assert [inv.id for inv in reloaded.get_all()] == [second.id, first.id]

    @pytest.mark.skipif(os.name != "posix", reason="Unix permissions")
    def test_file_permissions(self, tmp_path):
        store = InvoiceStore(tmp_path)
        store.add(make_invoice())
        assert (store.invoices_file.stat().st_mode & 0o777) == 0o600

    def test_get_by_onchain_id(self, tmp_path):
        store = InvoiceStore(tmp_path)
        inv = make_invoice()
        inv.onchain_invoice_id = "0x" + "AB" * 32
        store.add(inv)
        assert store.get("0x" + "ab" * 32).id == inv.id
        assert store.get(inv.id).id == inv.id
        assert store.get("inv-missing") is None

    def test_get_by_stealth_address(self, tmp_path):
        store = InvoiceStore(tmp_path)
        inv = make_invoice(stealth="0x" + "cd" * 20)
        store.add(inv)
        assert store.get_by_stealth_address("0x" + "CD" * 20).id == inv.id

    def test_update_and_status_filter(self, tmp_path):
        store = InvoiceStore(tmp_path)
        inv = make_invoice()
        store.add(inv)
        store.add(make_invoice())
        inv.mark_paid("0x" + "22" * 32)
        store.update(inv)

        reloaded = InvoiceStore(tmp_path)
        assert [i.id for i in reloaded.get_by_status(STATUS_PAID)] == [inv.id]
        assert len(reloaded.get_by_status(STATUS_PENDING)) == 1

    def test_delete(self, tmp_path):
        store = InvoiceStore(tmp_path)
        inv = make_invoice()
        store.add(inv)
        assert store.delete(inv.id)
        assert not store.delete(inv.id)
        assert InvoiceStore(tmp_path).get_all() == []

    def test_corrupt_file(self, tmp_path, caplog):
        (tmp_path / "invoices.json").write_text("{not json")
        store = InvoiceStore(tmp_path)
        assert store.get_all() == []
        assert "Failed to load invoices" in caplog.text
        assert (tmp_path / "invoices.json.corrupt").read_text() == "{not json"

    def test_bad_record_kept_after_save(self, tmp_path):
        good = make_invoice().to_dict()
        bad = make_invoice(stealth="0x" + "cd" * 20).to_dict()
        bad["id"] = "inv-bad"
        bad["status"] = "lost"
        path = tmp_path / "invoices.json"
        path.write_text(json.dumps([bad, good]))

        store = InvoiceStore(tmp_path)
        assert [inv.id for inv in store.get_all()] == [good["id"]]
        store.add(make_invoice(stealth="0x" + "ef" * 20))

        backup = json.loads((tmp_path / "invoices.json.corrupt").read_text())
        assert [item["id"] for item in backup] == ["inv-bad", good["id"]]
        assert len(json.loads(path.read_text())) == 2

    def test_backups_not_overwritten(self, tmp_path):
        (tmp_path / "invoices.json.corrupt").write_text("older")
        (tmp_path / "invoices.json").write_text('[{"id": "inv-partial"}]')
        InvoiceStore(tmp_path)
        assert (tmp_path / "invoices.json.corrupt").read_text() == "older"
        assert (tmp_path / "invoices.json.corrupt.1").read_text() == '[{"id": "inv-partial"}]'

    def test_save_leaves_no_temp_file(self, tmp_path):
        InvoiceStore(tmp_path).add(make_invoice())
        assert not (tmp_path / "invoices.tmp").exists()


class TestAnnouncementModel:
    """Tests for announcement records."""

    def test_hex_fields_decoded(self):
        ann = Announcement(
            scheme_id=1,
            stealth_address="0x" + "ab" * 20,
            initiator="0x" + "cd" * 20,
            ephemeral_pub_key="0x04" + "11" * 64,
            metadata="0x2a" + "ff" * 4,
        )
        assert ann.view_tag == 0x2a
        assert ann.memo_ciphertext == b"\xff" * 4
        assert Announcement.from_dict(ann.to_dict()) == ann

    def test_empty_metadata(self):
        ann = Announcement(1, "0x" + "ab" * 20, "0x" + "cd" * 20, b"\x04" * 65, b"")
        assert ann.view_tag is None
        assert ann.memo_ciphertext == b""

    def test_matched_to_dict(self):
        ann = Announcement(1, "0x" + "ab" * 20, "0x" + "cd" * 20, b"\x04" * 65, b"\x01")
        data = MatchedAnnouncement(ann, is_mine=True, memo="hi").to_dict()
        assert data["is_mine"] is True
        assert data["memo"] == "hi"
        assert data["transfer"] is None

    def test_event_without_tx_hash(self):
        event = {
            "args": {
                "schemeId": 1,
                "stealthAddress": "0x" + "ab" * 20,
                "initiator": "0x" + "cd" * 20,
                "ephemeralPubKey": b"\x04" * 65,
                "metadata": b"\x01",
            },
            "blockNumber": 5,
        }
        assert Announcement.from_event(event).tx_hash is None

        transfer = TransferLog.from_event({"args": {"from": "0x" + "cd" * 20, "to": "0x" + "ab" * 20, "value": 1}})
        assert transfer.tx_hash is None
        assert transfer.block_number is None

    def test_event_tx_hash_bytes(self):
        transfer = TransferLog.from_event({
            "args": {"from": "0x" + "cd" * 20, "to": "0x" + "ab" * 20, "value": 1},
            "transactionHash": b"\x02" * 32,
        })
        assert transfer.tx_hash == "0x" + "02" * 32
