class WeightConverter:
    """Utility for converting between kg and lb.

    Weights are stored in kg; ``unit`` is the user's display unit.
    """

    KG_TO_LB = 2.20462
    UNITS = ("kg", "lb")

    @staticmethod
    def kg_to_lb(kg: float) -> float:
        return round(kg * WeightConverter.KG_TO_LB, 2)

    @staticmethod
    def lb_to_kg(lb: float) -> float:
        return round(lb / WeightConverter.KG_TO_LB, 2)

    @classmethod
    def _check_unit(cls, unit: str) -> None:
        if unit not in cls.UNITS:
            raise ValueError(f"unknown unit: {unit}")

    @classmethod
    def to_display(cls, weight_kg: float, unit: str) -> float:
        cls._check_unit(unit)
        if unit == "lb":
            return round(weight_kg * cls.KG_TO_LB, 1)
        return round(weight_kg, 1)

    @classmethod
    def from_display(cls, value: float, unit: str) -> float:
        """Convert user input in ``unit`` to the stored kg value."""
        cls._check_unit(unit)
        if unit == "lb":
            return cls.lb_to_kg(value)
        return value

    @classmethod
    def format_weight(cls, weight_kg: float, unit: str) -> str:
        shown = cls.to_display(weight_kg, unit)
        text = f"{shown:g}" if shown == int(shown) else f"{shown:.1f}"
        return f"{text} {unit}"
