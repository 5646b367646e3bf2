import logging

from village_economy.simulation import Simulation
from village_economy.status_panel import run_window

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # Initialize the simulation with a 40x40 tile world and 8 villages
    sim = Simulation(size=40, num_villages=8, seed=2024)

    run_window(sim, tile_px=16)
