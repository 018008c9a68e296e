import click
from cosmpy.crypto.address import Address


class Bech32Address(click.ParamType):
    name = "bech32_address"

    def __init__(self, prefix: str = None):
        self.prefix = prefix

    def convert(self, value, param, ctx):
        try:
            address = str(Address(value))
        except (RuntimeError, ValueError):
            self.fail(f"{value} is not a valid bech32 address", param, ctx)
        if self.prefix and not address.startswith(f"{self.prefix}1"):
            self.fail(f"{value} does not use the '{self.prefix}' prefix", param, ctx)
        return address
