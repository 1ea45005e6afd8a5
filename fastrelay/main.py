"""Default application served by ``fastrelay run``, configured from the environment."""

from fastrelay.applications import FastRelay
from fastrelay.broker import RelayBroker
from fastrelay.settings import get_settings

broker = RelayBroker(get_settings())
app = FastRelay(broker=broker)
