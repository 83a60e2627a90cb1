"""
VeilGuard CLI - Private invoicing with stealth addresses.

Entry point for the `veilguard` command.
"""

import functools
import logging
import sys
from pathlib import Path

import click
from web3.exceptions import Web3Exception

from veilguard import __version__
from veilguard.models import InvoiceStore, STATUS_PENDING
from veilguard.networks import (
    CONTRACT_INVOICE_REGISTRY,
    CONTRACT_RECEIPT_STORE,
    CONTRACT_STEALTH_HELPER,
    get_token,
    get_tokens_for_chain,
    make_web3,
    require_network,
)
from veilguard.services.invoices import (
    generate_payment_uri,
    invoice_id_from_receipt,
    new_invoice,
    publish_invoice,
)
from veilguard.services.logging import configure_logging, load_recent_logs
from veilguard.services.receipts import (
    generate_receipt_link,
    make_commitment,
    parse_receipt_link,
    store_commitment_tx,
    verify_commitment_on_chain,
)
from veilguard.services.scanner import LogScanner
from veilguard.services.sweeper import refund, sweep
from veilguard.services.transactions import sign_and_send
from veilguard.utils import get_invoices_dir, get_keystore_path, load_settings
from veilguard.wallet import (
    MetaAddress,
    StealthError,
    generate_meta_keys,
    get_scheme,
    keystore_exists,
    load_meta_keys,
    read_meta_address,
    save_meta_keys,
)

logger = logging.getLogger(__name__)


def handle_errors(func):
    """Turn expected failures into clean CLI errors (exit code 1)."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (StealthError, ValueError, FileNotFoundError, Web3Exception) as e:
            logger.error(f"{func.__name__}: {e}")
            raise click.ClickException(str(e))
    return wrapper


class AppContext:
    """Per-invocation settings shared by all commands."""

    def __init__(self, settings: dict, chain_id: int, stealth_mode, rpc_url, keystore: Path):
        self.settings = settings
        self.chain_id = chain_id
        self.stealth_mode = stealth_mode
        self.rpc_url = rpc_url or settings.get("rpc_urls", {}).get(str(chain_id))
        self.keystore = keystore

    @property
    def network(self):
        return require_network(self.chain_id)

    def web3(self):
        return make_web3(self.network, self.rpc_url)

    def scheme(self):
        return get_scheme(self.stealth_mode, self.settings)

    def invoice_store(self) -> InvoiceStore:
        return InvoiceStore(get_invoices_dir())

    def load_keys(self, password: str):
        return load_meta_keys(self.keystore, password)


pass_app = click.make_pass_decorator(AppContext)

password_option = click.option(
    '--password', envvar='VEILGUARD_PASSWORD', prompt='Keystore password',
    hide_input=True, help='Keystore password (or VEILGUARD_PASSWORD)'
)
sender_key_option = click.option(
    '--sender-key', envvar='VEILGUARD_SENDER_KEY', default=None,
    help='Private key that pays gas for contract calls (or VEILGUARD_SENDER_KEY)'
)


@click.group()
@click.version_option(version=__version__)
@click.option('--chain-id', type=int, default=None, help='Chain ID (default: from settings)')
@click.option('--rpc-url', default=None, help='Custom RPC URL')
@click.option('--stealth-mode', type=click.Choice(['spec', 'demo']), default=None,
              help='Stealth scheme (default: VEILGUARD_STEALTH_MODE, settings, then spec)')
@click.option('--keystore', type=click.Path(path_type=Path), default=None,
              help='Keystore file (default: ~/.veilguard/keystore.json)')
@click.option('-v', '--verbose', is_flag=True, help='Enable debug logging')
@click.pass_context
def main(ctx, chain_id, rpc_url, stealth_mode, keystore, verbose):
    """
    VeilGuard - private invoices on Polygon.

    Each invoice gets a fresh ERC-5564 stealth address. Only the holder of
    the view key can link payments to the merchant, and receipts can be
    disclosed selectively.
    """
    settings = load_settings()
    configure_logging(
        logging.DEBUG if verbose else logging.INFO,
        retention_days=int(settings.get("log_retention_days", 0)),
    )
    ctx.obj = AppContext(
        settings=settings,
        chain_id=chain_id or int(settings.get("chain_id", 137)),
        stealth_mode=stealth_mode,
        rpc_url=rpc_url,
        keystore=keystore or get_keystore_path(),
    )


# ============================================
# Keys
# ============================================

@main.command()
@click.option('--password', envvar='VEILGUARD_PASSWORD', prompt='New keystore password',
              hide_input=True, confirmation_prompt=True, help='Password to encrypt the keystore')
@click.option('--force', is_flag=True, help='Overwrite an existing keystore')
@pass_app
@handle_errors
def keygen(app, password, force):
    """Generate merchant spend/view keys and save them encrypted."""
    if keystore_exists(app.keystore) and not force:
        raise click.ClickException(f"Keystore already exists at {app.keystore} (use --force)")

    keys, meta = generate_meta_keys()
    save_meta_keys(app.keystore, keys, password)

    click.echo(click.style("✓ Keys generated", fg="green"))
    click.echo(f"Keystore: {app.keystore}")
    click.echo(f"Meta-address: {meta.encode()}")


@main.command('meta-address')
@click.option('--chain', default='eth', help='Chain tag in the st:<chain>: prefix')
@pass_app
@handle_errors
def meta_address(app, chain):
    """Show the shareable meta-address (no password needed)."""
    meta = read_meta_address(app.keystore)
    click.echo(meta.encode(chain))


# ============================================
# Invoices
# ============================================

@main.group()
def invoice():
    """Create and list invoices."""
    pass


@invoice.command('new')
@click.option('--amount', required=True, help='Amount in token units, e.g. 25.50')
@click.option('--token', 'token_symbol', default=None, help='Token symbol (default: first token on the chain)')
@click.option('--memo', default='', help='Memo, encrypted to the view key')
@click.option('--meta', 'meta_text', default=None, help='Recipient meta-address (default: keystore)')
@click.option('--publish', is_flag=True, help='Announce and register on-chain')
@sender_key_option
@pass_app
@handle_errors
def invoice_new(app, amount, token_symbol, memo, meta_text, publish, sender_key):
    """Create a stealth invoice."""
    network = app.network
    if token_symbol:
        token = get_token(token_symbol)
        if token is None:
            raise click.ClickException(f"Unknown token: {token_symbol}")
    else:
        tokens = get_tokens_for_chain(network.chain_id)
        if not tokens:
            raise click.ClickException(f"No tokens configured for {network.display_name}")
        token = tokens[0]

    meta = MetaAddress.parse(meta_text) if meta_text else read_meta_address(app.keystore)
    scheme = app.scheme()

    inv, result = new_invoice(meta, network.chain_id, token, amount, scheme=scheme, memo=memo)

    if publish and not sender_key:
        raise click.ClickException("--sender-key is required to publish")

    # Stored before anything is broadcast
    store = app.invoice_store()
    store.add(inv)

    if publish:
        w3 = app.web3()
        announce_hash, create_hash = publish_invoice(
            w3, sender_key, network, inv, result, token_decimals=token.decimals
        )
        if announce_hash is None:
            click.echo(click.style("⚠ Announcement failed; invoice registered anyway", fg="yellow"))
        else:
            click.echo(f"Announce tx: {network.tx_url(announce_hash)}")
        click.echo(f"Create tx:   {network.tx_url(create_hash)}")

        try:
            receipt = w3.eth.wait_for_transaction_receipt(create_hash)
        except (Web3Exception, OSError) as e:
            logger.warning(f"No receipt for invoice {inv.id} create tx {create_hash}: {e}")
            click.echo(click.style(
                f"⚠ Create tx not confirmed yet ({e}); invoice {inv.id} saved without its on-chain ID",
                fg="yellow",
            ))
        else:
            inv.onchain_invoice_id = invoice_id_from_receipt(
                w3, network.contract_address(CONTRACT_INVOICE_REGISTRY), receipt
            )
            if inv.onchain_invoice_id:
                store.update(inv)
                click.echo(f"On-chain ID: {inv.onchain_invoice_id}")

    click.echo(click.style(f"✓ Invoice {inv.id}", fg="green"))
    click.echo(f"Amount:           {inv.format_amount()} on {network.display_name}")
    click.echo(f"Stealth address:  {inv.stealth_address}")
    click.echo(f"Ephemeral pubkey: {inv.ephemeral_pub_key}")
    click.echo(f"View tag:         {inv.view_tag}")
    click.echo(f"Payment URI:      "
               f"{generate_payment_uri(inv.token_address, inv.stealth_address, amount, network.chain_id, token.decimals)}")


@invoice.command('list')
@click.option('--status', type=click.Choice(['pending', 'confirming', 'paid', 'expired']), default=None)
@pass_app
def invoice_list(app, status):
    """List stored invoices, newest first."""
    store = app.invoice_store()
    invoices = store.get_by_status(status) if status else store.get_all()
    if not invoices:
        click.echo("No invoices.")
        return
    for inv in invoices:
        click.echo(f"{inv.id}  {inv.status:<10}  {inv.format_amount():<16}  {inv.stealth_address}")


# ============================================
# Inbox & Funds
# ============================================

@main.command()
@click.option('--from-block', type=int, default=0, help='First block (0 = recent blocks only)')
@click.option('--to-block', default='latest', help='Last block')
@click.option('--token', 'token_symbol', default=None, help='Also look up incoming transfers of this token')
@password_option
@pass_app
@handle_errors
def scan(app, from_block, to_block, token_symbol, password):
    """Find announcements addressed to you."""
    network = app.network
    if not network.is_deployed(CONTRACT_STEALTH_HELPER):
        raise click.ClickException(f"Stealth helper not configured for {network.display_name}")

    keys = app.load_keys(password)
    token_address = None
    if token_symbol:
        token = get_token(token_symbol)
        if token is None:
            raise click.ClickException(f"Unknown token: {token_symbol}")
        token_address = token.addresses.get(network.chain_id)

    scanner = LogScanner(app.web3())
    matches = scanner.scan(
        network.contract_address(CONTRACT_STEALTH_HELPER),
        keys,
        scheme=app.scheme(),
        from_block=from_block,
        to_block=to_block if to_block == 'latest' else int(to_block),
        token_address=token_address,
        max_workers=int(app.settings.get("scan_workers", 4)),
    )

    store = app.invoice_store()
    for item in matches:
        line = f"{item.stealth_address}  block {item.announcement.block_number}"
        if item.memo is not None:
            line += f"  memo: {item.memo}"
        if item.transfer is not None:
            line += f"  received {item.transfer.value} from {item.transfer.from_address}"
            inv = store.get_by_stealth_address(item.stealth_address)
            if inv is not None and inv.status == STATUS_PENDING:
                inv.mark_confirming(item.transfer.tx_hash)
                store.update(inv)
                logger.info(f"Invoice {inv.id} confirming")
        click.echo(line)
    click.echo(f"{len(matches)} payment(s) found")


def _load_invoice(app, invoice_id):
    inv = app.invoice_store().get(invoice_id)
    if inv is None:
        raise click.ClickException(f"Unknown invoice: {invoice_id}")
    return inv


def _onchain_id(app, invoice_id):
    """Accept a bytes32 invoice ID as-is, or map a local inv-... ID to its on-chain one."""
    if invoice_id.startswith("0x"):
        return invoice_id
    inv = _load_invoice(app, invoice_id)
    if not inv.onchain_invoice_id:
        raise click.ClickException(f"Invoice {invoice_id} has not been registered on-chain")
    return inv.onchain_invoice_id


@main.command('sweep')
@click.argument('invoice_id')
@click.option('--to', 'destination', envvar='VEILGUARD_MERCHANT_SAFE', required=True,
              help='Merchant safe address (or VEILGUARD_MERCHANT_SAFE)')
@click.option('--amount', type=int, default=None, help='Raw token units (default: full balance)')
@password_option
@pass_app
@handle_errors
def sweep_cmd(app, invoice_id, destination, amount, password):
    """Move an invoice's funds to the merchant safe."""
    inv = _load_invoice(app, invoice_id)
    keys = app.load_keys(password)
    result = sweep(
        app.web3(), keys, inv.ephemeral_pub_key, inv.stealth_address,
        inv.token_address, destination, amount=amount, scheme=get_scheme(inv.scheme),
    )
    click.echo(click.style(f"✓ Swept {result.amount} units", fg="green"))
    click.echo(app.network.tx_url(result.tx_hash))


@main.command('refund')
@click.argument('invoice_id')
@click.option('--payer', required=True, help='Original payer address')
@click.option('--amount', type=int, default=None, help='Raw token units (default: full balance)')
@password_option
@pass_app
@handle_errors
def refund_cmd(app, invoice_id, payer, amount, password):
    """Send an invoice's funds back to the payer."""
    inv = _load_invoice(app, invoice_id)
    keys = app.load_keys(password)
    result = refund(
        app.web3(), keys, inv.ephemeral_pub_key, inv.stealth_address,
        inv.token_address, payer, amount=amount, scheme=get_scheme(inv.scheme),
    )
    click.echo(click.style(f"✓ Refunded {result.amount} units", fg="green"))
    click.echo(app.network.tx_url(result.tx_hash))


# ============================================
# Receipts
# ============================================

@main.command()
@click.argument('invoice_id')
@click.argument('tx_hash')
@click.option('--send', is_flag=True, help='Store the commitment on-chain')
@sender_key_option
@pass_app
@handle_errors
def commit(app, invoice_id, tx_hash, send, sender_key):
    """Compute (and optionally store) a receipt commitment."""
    invoice_id = _onchain_id(app, invoice_id)
    commitment = make_commitment(invoice_id, tx_hash)
    click.echo(f"Commitment: {commitment}")

    if send:
        if not sender_key:
            raise click.ClickException("--sender-key is required to store the commitment")
        network = app.network
        tx = store_commitment_tx(network.contract_address(CONTRACT_RECEIPT_STORE), invoice_id, commitment)
        click.echo(f"Stored: {network.tx_url(sign_and_send(app.web3(), tx, sender_key))}")


@main.command()
@click.argument('invoice_id', required=False)
@click.argument('tx_hash', required=False)
@click.option('--link', default=None, help='Verification link instead of the two arguments')
@pass_app
@handle_errors
def verify(app, invoice_id, tx_hash, link):
    """Check a disclosed (invoice, tx) pair against the on-chain commitment."""
    if link:
        invoice_id, tx_hash = parse_receipt_link(link)
    if not invoice_id or not tx_hash:
        raise click.UsageError("Provide INVOICE_ID and TX_HASH, or --link")
    invoice_id = _onchain_id(app, invoice_id)

    network = app.network
    result = verify_commitment_on_chain(
        app.web3(), network.contract_address(CONTRACT_RECEIPT_STORE), invoice_id, tx_hash
    )
    colour = "green" if result.valid else "red"
    click.echo(click.style(f"Receipt: {result.status}", fg=colour))
    click.echo(f"Stored:   {result.stored_commitment}")
    click.echo(f"Computed: {result.computed_commitment}")
    if not result.valid:
        sys.exit(1)


@main.command('receipt-link')
@click.argument('invoice_id')
@click.argument('tx_hash')
@click.option('--base-url', default=None, help='Verification site (default: from settings)')
@pass_app
@handle_errors
def receipt_link(app, invoice_id, tx_hash, base_url):
    """Print a shareable verification link."""
    base = base_url or app.settings.get("receipt_base_url", "https://veilguard.app")
    click.echo(generate_receipt_link(_onchain_id(app, invoice_id), tx_hash, base))


@main.command()
@click.option('--lines', type=int, default=50, help='Number of lines')
def logs(lines):
    """Show recent log lines."""
    for line in load_recent_logs(lines):
        click.echo(line)


if __name__ == "__main__":
    main()
