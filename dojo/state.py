from typing import Optional

from dojo.models.katas import Kata
from dojo.sandbox import Dispatcher

# Global runtime state initialized in lifespan.setup_resources
katas: list[Kata] = []
katas_by_id: dict[str, Kata] = {}
dispatcher: Optional[Dispatcher] = None
