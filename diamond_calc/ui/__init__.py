from . import calculator, history, settings

__all__ = [
	"calculator",
	"history",
	"settings",
]
