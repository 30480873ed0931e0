"""postock：采购单履约与库存分配一致性引擎。"""

__version__ = "0.3.0"
