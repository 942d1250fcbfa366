"""School feed: paged marks and attendance submission for a school management API.

Keep package import lightweight; import submodules explicitly where needed.
"""

__version__ = "1.0.0"
__all__ = [
	"client",
	"config",
	"feeds",
	"models",
	"exceptions",
	"paging",
	"storage",
	"validation",
	"workflow",
]
