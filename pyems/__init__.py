"""pyems Python Package

Python library bridging Event Management Software (EMS) to a Biamp Tesira DSP.
"""

from pyems.bridge import EMSBridge

__all__ = ["EMSBridge"]
