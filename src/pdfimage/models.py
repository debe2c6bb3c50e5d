"""Image record and the enumerations threaded through the import pipeline."""

from __future__ import annotations

from dataclasses import FrozenInstanceError, dataclass, field
from enum import StrEnum
from typing import Self


class ImageFormat(StrEnum):
    PNG = "png"
    JPEG = "jpeg"
    GIF = "gif"
    BMP = "bmp"
    TIFF_II = "tiff_ii"
    TIFF_MM = "tiff_mm"
    PSD = "psd"
    ICO = "ico"
    WBMP = "wbmp"
    XBM = "xbm"
    IFF = "iff"
    SWC = "swc"
    UNSUPPORTED = "unsupported"


class ColorSpace(StrEnum):
    GRAY = "DeviceGray"
    RGB = "DeviceRGB"
    CMYK = "DeviceCMYK"
    INDEXED = "Indexed"


class SourceKind(StrEnum):
    NONE = "none"
    INLINE = "inline"
    LOCAL = "local"
    REMOTE = "remote"


# Formats the PDF writer can embed without transcoding.
NATIVE_FORMATS: frozenset[ImageFormat] = frozenset({ImageFormat.PNG, ImageFormat.JPEG})

# Formats whose faithful re-encoding target is PNG rather than JPEG.
LOSSLESS_FORMATS: frozenset[ImageFormat] = frozenset(
    {
        ImageFormat.GIF,
        ImageFormat.PNG,
        ImageFormat.PSD,
        ImageFormat.BMP,
        ImageFormat.WBMP,
        ImageFormat.XBM,
        ImageFormat.TIFF_II,
        ImageFormat.TIFF_MM,
        ImageFormat.IFF,
        ImageFormat.SWC,
        ImageFormat.ICO,
    }
)

COLOR_SPACE_BY_CHANNELS: dict[int, ColorSpace] = {
    1: ColorSpace.GRAY,
    3: ColorSpace.RGB,
    4: ColorSpace.CMYK,
}


class _Freezable:
    """Lets a mutable dataclass be locked once it leaves the pipeline."""

    _frozen = False

    def __setattr__(self, name: str, value: object) -> None:
        if self._frozen:
            raise FrozenInstanceError(f"cannot assign to field {name!r}")
        super().__setattr__(name, value)

    def __delattr__(self, name: str) -> None:
        if self._frozen:
            raise FrozenInstanceError(f"cannot delete field {name!r}")
        super().__delattr__(name)

    def freeze(self) -> Self:
        object.__setattr__(self, "_frozen", True)
        return self


@dataclass
class SourceRef(_Freezable):
    """Where the raw bytes came from and whether they may be embedded."""

    kind: SourceKind = SourceKind.NONE
    location: str = ""
    embed: bool = True


@dataclass
class ImageRecord(_Freezable):
    """An image moving through acquisition, recode and finalization.

    ``width``/``height`` always describe the current ``raw`` bytes.
    ``target_format`` is fixed by the originally detected format.
    ``plain`` and ``mask`` are set together, only when the alpha channel
    was split off into a separate soft mask image.

    Records are mutated freely while being built. The cache freezes them,
    together with their source and sub-images, before handing them out.
    """

    key: str = ""
    defprint: bool = False
    raw: bytes = b""
    source: SourceRef = field(default_factory=SourceRef)
    width: int = 0
    height: int = 0
    format: ImageFormat = ImageFormat.UNSUPPORTED
    native: bool = False
    target_format: ImageFormat = ImageFormat.PNG
    bits: int = 8
    channels: int = 3
    color_space: ColorSpace = ColorSpace.RGB
    icc: bytes = b""
    filter: str = "FlateDecode"
    parms: str = ""
    palette: bytes = b""
    trns: tuple[int, ...] = ()
    data: bytes = b""
    recoded: bool = False
    needs_recode: bool = False
    split_alpha: bool = False
    plain: ImageRecord | None = None
    mask: ImageRecord | None = None

    @property
    def embed(self) -> bool:
        """False when the source was referenced as link-only."""
        return self.source.embed

    def freeze(self) -> Self:
        """Make this record, its source and its sub-images read-only."""
        self.source.freeze()
        if self.plain is not None:
            self.plain.freeze()
        if self.mask is not None:
            self.mask.freeze()
        return super().freeze()
