from typing import Any

def ms_to_second(ms: float) -> float:
    return ms / 1000

def second_to_ms(second: float) -> float:
    return second * 1000

def parse_number(val: str) -> float:
    if not val:
        raise ValueError("Value empty")
    if "/" in val:
        num, denom = val.split("/", 1)
        if float(denom) == 0:
            raise ValueError("Division by zero")
        return float(num) / float(denom)
    return float(val)

def parse_ms(val: str) -> float:
    # accepts "2", "2ms" or "0.002s", always returns milliseconds
    val = val.strip()
    if val.endswith("ms"):
        ms = parse_number(val[:-2])
    elif val.endswith("s"):
        ms = second_to_ms(parse_number(val[:-1]))
    else:
        ms = parse_number(val)
    if ms < 0:
        raise ValueError("Must not be negative")
    return ms

def pretty_time(seconds: float) -> str:
    # 81.5 -> "1:21.500"
    sign = "-" if seconds < 0 else ""
    seconds = abs(seconds)
    return f"{sign}{int(seconds // 60):d}:{seconds % 60:06.3f}"

def pretty_list(data: list[Any]) -> str:
    if not data:
        return ""
    if len(data) == 1:
        return str(data[0])
    return ", ".join(map(str, data[:-1])) + f" and {data[-1]}"
