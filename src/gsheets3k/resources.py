from dataclasses import asdict,fields,is_dataclass
from typing import List, Self

class GoogleWorkSpaceResourceBase():
    """
    Mixin for the resource dataclasses, it is not a dataclass itself.
    Subclasses call fixup() from __post_init__ to coerce nested dicts
    into their dataclass form.
    """
    @classmethod
    def from_base(cls, base: dict|None) -> Self:
        """
        Build from the raw dict the GWS client hands back.
        Responses carry plenty of keys we don't model, those are dropped
        rather than blowing up the dataclass __init__.
        """
        if not base:
            return cls()
        names = {f.name for f in fields(cls)} if is_dataclass(cls) else set()
        return cls(**{k: v for k, v in dict(base).items() if k in names})

    def to_base(self) -> dict:
        """
        Request body form of the resource, asdict() after fixup().
        Override when the wire shape differs from the field layout.
        """
        self.fixup()
        return asdict(self)

    def trim(self) -> dict|None:
        """
        to_base() minus the top level keys left unset: None, or an empty
        string/container.  Numbers and bools are kept even when falsy since
        0 and False are real values.  Used for bodies sent with a "*" field
        mask, which would otherwise reset whatever we left at its default.
        """
        b = self.to_base()
        if b:
            for k,v in list(b.items()):
                if v is None or (type(v) not in [int,bool,float] and not v):
                    del b[k]
        return b

    def fixup(self) -> None:
        """hook for subclasses to coerce or check their fields"""
        pass

    def update_fields(self, **kwargs) -> List[str]:
        """
        Set any of the given fields this dataclass has.
        Unknown names and None values are ignored, returns the names updated.
        """
        updated = []
        if is_dataclass(self):
            names = {f.name for f in fields(self)}
            for k,v in kwargs.items():
                if v is not None and k in names:
                    setattr(self, k, v)
                    updated.append(k)
            self.fixup()
        return updated
