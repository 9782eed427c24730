class Telemetry:
    def __init__(self):
        self.cycles = []

    def log_cycle(self, idx: int, rec: dict):
        rec["cycle_idx"] = idx
        self.cycles.append(rec)
