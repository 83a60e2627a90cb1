"""
CLI tests
"""

from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner
from web3.exceptions import TimeExhausted, Web3Exception

from veilguard.cli import main
from veilguard.models import InvoiceStore
from veilguard.services.receipts import make_commitment
from veilguard.utils import get_invoices_dir, get_keystore_path


PASSWORD = "test-password"
HELPER = "0x" + "55" * 20
STORE = "0x" + "12" * 20
SAFE = "0x" + "88" * 20
PAYER = "0x" + "77" * 20
INVOICE_ID = "0x" + "aa" * 32
TX_HASH = "0x" + "bb" * 32
ANNOUNCE_HASH = "0x" + "a1" * 32
CREATE_HASH = "0x" + "c1" * 32
SENDER_KEY = "0x" + "99" * 32


@pytest.fixture
def runner(monkeypatch, fast_argon2):
    monkeypatch.setenv("VEILGUARD_PASSWORD", PASSWORD)
    return CliRunner()


@pytest.fixture
def w3(monkeypatch):
    """Mocked Web3 returned wherever the CLI would connect."""
    client = MagicMock()
    client.eth.block_number = 100
    client.eth.chain_id = 137
    client.eth.gas_price = 1
    client.eth.get_transaction_count.return_value = 0
    client.eth.send_raw_transaction.return_value = b"\xcd" * 32
    monkeypatch.setattr("veilguard.cli.make_web3", lambda network, rpc_url=None: client)
    return client


@pytest.fixture
def keystore(runner):
    result = runner.invoke(main, ["keygen"])
    assert result.exit_code == 0, result.output
    return get_keystore_path()


def create_invoice(runner, *args):
    result = runner.invoke(main, ["invoice", "new", "--amount", "2.5", *args])
    assert result.exit_code == 0, result.output
    return InvoiceStore(get_invoices_dir()).get_all()[0]


class TestKeyCommands:
    """Tests for keygen and meta-address."""

    def test_keygen(self, keystore, runner):
        assert keystore.exists()
        result = runner.invoke(main, ["meta-address"])
        assert result.exit_code == 0
        assert result.output.strip().startswith("st:eth:0x")

    def test_keygen_refuses_overwrite(self, keystore, runner):
        result = runner.invoke(main, ["keygen"])
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_meta_address_without_keystore(self, runner):
        result = runner.invoke(main, ["meta-address"])
        assert result.exit_code == 1

    def test_chain_tag(self, keystore, runner):
        result = runner.invoke(main, ["meta-address", "--chain", "matic"])
        assert result.output.startswith("st:matic:0x")


class TestInvoiceCommands:
    """Tests for invoice creation and listing."""

    def test_new_and_list(self, keystore, runner):
        inv = create_invoice(runner, "--memo", "April hosting")
        assert inv.token == "USDC"
        assert inv.amount == "2.5"
        assert inv.encrypted_memo

        result = runner.invoke(main, ["invoice", "list"])
        assert inv.id in result.output
        assert "pending" in result.output

    def test_new_for_other_meta_address(self, runner):
        from veilguard.wallet import generate_meta_keys
        _, meta = generate_meta_keys()
        inv = create_invoice(runner, "--meta", meta.encode())
        assert inv.stealth_address

    def test_unknown_token(self, keystore, runner):
        result = runner.invoke(main, ["invoice", "new", "--amount", "1", "--token", "DAI"])
        assert result.exit_code == 1
        assert "Unknown token" in result.output

    def test_bad_amount(self, keystore, runner):
        result = runner.invoke(main, ["invoice", "new", "--amount", "0"])
        assert result.exit_code == 1

    def test_invalid_stealth_mode_setting(self, keystore, runner, monkeypatch):
        monkeypatch.setenv("VEILGUARD_STEALTH_MODE", "nonsense")
        result = runner.invoke(main, ["invoice", "new", "--amount", "1"])
        assert result.exit_code == 1
        assert "Invalid stealth mode" in result.output

    def test_publish_requires_sender(self, keystore, runner):
        result = runner.invoke(main, ["invoice", "new", "--amount", "1", "--publish"])
        assert result.exit_code == 1
        assert "--sender-key" in result.output
        assert InvoiceStore(get_invoices_dir()).get_all() == []

    def test_publish_records_onchain_id(self, keystore, runner, w3, monkeypatch):
        monkeypatch.setattr("veilguard.cli.publish_invoice", lambda *args, **kwargs: (ANNOUNCE_HASH, CREATE_HASH))
        monkeypatch.setattr("veilguard.cli.invoice_id_from_receipt", lambda *args: INVOICE_ID)

        inv = create_invoice(runner, "--publish", "--sender-key", SENDER_KEY)

        assert inv.onchain_invoice_id == INVOICE_ID
        w3.eth.wait_for_transaction_receipt.assert_called_once_with(CREATE_HASH)

    def test_publish_receipt_timeout_keeps_invoice(self, keystore, runner, w3, monkeypatch):
        monkeypatch.setattr("veilguard.cli.publish_invoice", lambda *args, **kwargs: (ANNOUNCE_HASH, CREATE_HASH))
        w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("slow")

        result = runner.invoke(main, ["invoice", "new", "--amount", "1", "--publish", "--sender-key", SENDER_KEY])

        assert result.exit_code == 0, result.output
        assert CREATE_HASH in result.output
        assert "not confirmed yet" in result.output
        stored = InvoiceStore(get_invoices_dir()).get_all()
        assert len(stored) == 1
        assert stored[0].onchain_invoice_id is None
        assert stored[0].ephemeral_pub_key

    def test_publish_create_failure_keeps_invoice(self, keystore, runner, w3, monkeypatch):
        def fail(*args, **kwargs):
            raise Web3Exception("nonce too low")
        monkeypatch.setattr("veilguard.cli.publish_invoice", fail)

        result = runner.invoke(main, ["invoice", "new", "--amount", "1", "--publish", "--sender-key", SENDER_KEY])

        assert result.exit_code == 1
        assert "nonce too low" in result.output
        assert len(InvoiceStore(get_invoices_dir()).get_all()) == 1

    def test_empty_list(self, runner):
        result = runner.invoke(main, ["invoice", "list"])
        assert "No invoices." in result.output


class TestScanAndSweep:
    """Tests for the inbox and fund commands."""

    def test_scan_marks_paid_invoice_confirming(self, keystore, runner, w3, monkeypatch):
        monkeypatch.setenv("VEILGUARD_STEALTH_HELPER_137", HELPER)
        inv = create_invoice(runner, "--memo", "order 9")
        contract = w3.eth.contract.return_value
        contract.events.Announcement.get_logs.return_value = [{
            "args": {
                "schemeId": 1,
                "stealthAddress": inv.stealth_address,
                "initiator": PAYER,
                "ephemeralPubKey": bytes.fromhex(inv.ephemeral_pub_key[2:]),
                "metadata": bytes.fromhex(inv.view_tag[2:] + inv.encrypted_memo[2:]),
            },
            "blockNumber": 90,
            "transactionHash": b"\x01" * 32,
        }]
        contract.events.Transfer.get_logs.return_value = [{
            "args": {"from": PAYER, "to": inv.stealth_address, "value": 2_500_000},
            "blockNumber": 91,
            "transactionHash": b"\x02" * 32,
        }]

        result = runner.invoke(main, ["scan", "--token", "USDC"])

        assert result.exit_code == 0, result.output
        assert "memo: order 9" in result.output
        assert "1 payment(s) found" in result.output
        stored = InvoiceStore(get_invoices_dir()).get(inv.id)
        assert stored.status == "confirming"
        assert stored.tx_hash == "0x" + "02" * 32

    def test_scan_requires_helper(self, keystore, runner, w3):
        result = runner.invoke(main, ["scan"])
        assert result.exit_code == 1
        assert "not configured" in result.output

    def test_sweep(self, keystore, runner, w3):
        inv = create_invoice(runner)
        w3.eth.contract.return_value.functions.balanceOf.return_value.call.return_value = 2_500_000

        result = runner.invoke(main, ["sweep", inv.id, "--to", SAFE])

        assert result.exit_code == 0, result.output
        assert "Swept 2500000 units" in result.output
        assert "polygonscan.com/tx/0x" + "cd" * 32 in result.output

    def test_sweep_uses_invoice_scheme(self, keystore, runner, w3, monkeypatch):
        inv = create_invoice(runner)
        assert inv.scheme == "spec"
        w3.eth.contract.return_value.functions.balanceOf.return_value.call.return_value = 1_000_000
        monkeypatch.setenv("VEILGUARD_STEALTH_MODE", "demo")

        result = runner.invoke(main, ["sweep", inv.id, "--to", SAFE])

        assert result.exit_code == 0, result.output
        assert "Swept 1000000 units" in result.output

    def test_refund_uses_invoice_scheme(self, keystore, runner, w3):
        inv = create_invoice(runner)
        w3.eth.contract.return_value.functions.balanceOf.return_value.call.return_value = 1_000_000

        result = runner.invoke(main, ["--stealth-mode", "demo", "refund", inv.id, "--payer", PAYER])

        assert result.exit_code == 0, result.output
        assert "Refunded 1000000 units" in result.output

    def test_sweep_wrong_password(self, keystore, runner, w3):
        inv = create_invoice(runner)
        result = runner.invoke(main, ["sweep", inv.id, "--to", SAFE, "--password", "nope"])
        assert result.exit_code == 1
        assert "Wrong password" in result.output
        w3.eth.send_raw_transaction.assert_not_called()

    def test_sweep_unknown_invoice(self, keystore, runner, w3):
        result = runner.invoke(main, ["sweep", "inv-000000000000", "--to", SAFE])
        assert result.exit_code == 1
        assert "Unknown invoice" in result.output


class TestReceiptCommands:
    """Tests for commitments and verification."""

    def test_commit(self, runner):
        result = runner.invoke(main, ["commit", INVOICE_ID, TX_HASH])
        assert result.exit_code == 0
        assert make_commitment(INVOICE_ID, TX_HASH) in result.output

    def test_commit_unregistered_local_invoice(self, keystore, runner):
        inv = create_invoice(runner)
        result = runner.invoke(main, ["commit", inv.id, TX_HASH])
        assert result.exit_code == 1
        assert "not been registered" in result.output

    def test_receipt_link(self, runner):
        result = runner.invoke(main, ["receipt-link", INVOICE_ID, TX_HASH, "--base-url", "https://audit.example"])
        assert result.output.strip() == f"https://audit.example/verify?invoiceId={INVOICE_ID}&txHash={TX_HASH}"

    def test_verify_valid(self, runner, w3, monkeypatch):
        monkeypatch.setenv("VEILGUARD_RECEIPT_STORE_137", STORE)
        stored = bytes.fromhex(make_commitment(INVOICE_ID, TX_HASH)[2:])
        w3.eth.contract.return_value.functions.receiptOf.return_value.call.return_value = stored

        result = runner.invoke(main, ["verify", INVOICE_ID, TX_HASH])

        assert result.exit_code == 0
        assert "Receipt: valid" in result.output

    def test_verify_link_mismatch(self, runner, w3, monkeypatch):
        monkeypatch.setenv("VEILGUARD_RECEIPT_STORE_137", STORE)
        w3.eth.contract.return_value.functions.receiptOf.return_value.call.return_value = b"\x01" * 32
        link = f"https://veilguard.app/verify?invoiceId={INVOICE_ID}&txHash={TX_HASH}"

        result = runner.invoke(main, ["verify", "--link", link])

        assert result.exit_code == 1
        assert "Receipt: mismatch" in result.output

    def test_verify_needs_arguments(self, runner):
        result = runner.invoke(main, ["verify"])
        assert result.exit_code == 2


class TestLogsCommand:
    """Tests for the logs command."""

    def test_logs(self, runner):
        from veilguard.services.logging import append_log
        append_log("2024-01-01 00:00:00 [INFO] veilguard: hello", retention_days=7)
        result = runner.invoke(main, ["logs", "--lines", "5"])
        assert "veilguard: hello" in result.output
