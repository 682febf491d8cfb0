#!/usr/bin/env python3
import argparse
import json
import random
from pathlib import Path

DEFAULT_OUT_DIR = Path(__file__).resolve().parents[1] / "data"

COUNTRIES = [
    "India", "Vietnam", "Bangladesh", "Thailand", "Indonesia", "China", "Turkey", "Pakistan", "Egypt", "Mexico",
    "Brazil", "USA", "Italy", "Spain", "Germany", "France", "UK", "South Korea", "Japan", "Malaysia",
]
CITIES = [
    "Mumbai", "Ho Chi Minh City", "Dhaka", "Bangkok", "Jakarta", "Beijing", "Istanbul", "Karachi", "Cairo",
    "Mexico City", "Sao Paulo", "New York", "Milan", "Madrid", "Berlin", "Paris", "London", "Seoul", "Tokyo",
    "Kuala Lumpur",
]
CERTIFICATIONS = ["ISO 9001", "GOTS", "OEKO-TEX", "WRAP", "BSCI", "SEDEX", "GRS", "CPSIA", "ISO 14001"]
SPECIALTIES = [
    "Cotton Garments", "Organic Materials", "Synthetic Materials", "Quick Turnaround", "Low-cost Production",
    "Large Volumes", "Premium Quality", "Sustainable Materials", "Eco-friendly Materials", "Custom Designs",
]
HS_CODES = ["6203", "6204", "6101", "6102", "6205", "6206", "6103", "6104", "6207", "6208"]
PORT_NAMES = [
    "Jebel Ali Port", "Singapore Port", "Port Klang", "Port of Shanghai", "Port of Rotterdam", "Port of Antwerp",
    "Port of Los Angeles", "Port of Hamburg", "Port of Santos", "Port of Felixstowe", "Port of Busan",
    "Port of Tokyo", "Port of Tanjung Pelepas", "Port of Valencia", "Port of Le Havre", "Port of Genoa",
    "Port of Barcelona", "Port of Manzanillo", "Port of Durban", "Port of Vancouver", "Port of Algeciras",
    "Port of Piraeus", "Port of Jeddah", "Port of Colombo", "Port of Melbourne", "Port of Montreal",
    "Port of Seattle", "Port of Gothenburg", "Port of Zeebrugge", "Port of Gdansk", "Port of Haifa",
]
FACILITIES = [
    "Container Terminal", "Free Zone", "24/7 Operations", "Smart Port Technology", "Automated Systems",
    "Express Services", "Deep Water Terminal", "Rail Connectivity", "Free Trade Zone",
]
CONGESTION_LEVELS = ["Low", "Medium", "High"]


def rand_float(rng, low, high, decimals=2):
    return round(rng.uniform(low, high), decimals)


def pick_many(rng, items, count):
    return rng.sample(items, count)


def generate_suppliers(rng, count=120):
    suppliers = []
    for i in range(1, count + 1):
        country = rng.choice(COUNTRIES)
        city = rng.choice(CITIES)
        suppliers.append({
            "id": i,
            "name": f"Supplier {i} {city} {country}",
            "country": country,
            "city": city,
            "coordinates": [rand_float(rng, -40, 40, 4), rand_float(rng, 30, 130, 4)],
            "certifications": pick_many(rng, CERTIFICATIONS, rng.randint(1, 3)),
            "leadTime": rng.randint(15, 45),
            "reliability": rng.randint(80, 99),
            "productCost": rand_float(rng, 10, 30),
            "minOrderQuantity": rng.randint(500, 5000),
            "specialties": pick_many(rng, SPECIALTIES, rng.randint(1, 3)),
            "rating": rand_float(rng, 3.5, 5, 1),
            "yearsInBusiness": rng.randint(3, 30),
            "contact": {
                "email": f"contact{i}@supplier.com",
                "phone": f"+{rng.randint(1, 99)} {rng.randint(1000, 9999)} {rng.randint(1000, 9999)}",
            },
        })
    return suppliers


def generate_ports(rng, count=30):
    ports = []
    for i in range(1, count + 1):
        connectivity = {
            country: {"distance": rng.randint(500, 8000), "transitTime": rng.randint(2, 20)}
            for country in COUNTRIES
        }
        ports.append({
            "id": i,
            "name": f"{PORT_NAMES[i % len(PORT_NAMES)]} {i}",
            "country": rng.choice(COUNTRIES),
            "city": rng.choice(CITIES),
            "coordinates": [rand_float(rng, -40, 40, 4), rand_float(rng, 30, 130, 4)],
            "congestionLevel": rng.choice(CONGESTION_LEVELS),
            "averageDelay": rng.randint(1, 7),
            "shippingCost": rng.randint(800, 2500),
            "facilities": pick_many(rng, FACILITIES, rng.randint(2, 4)),
            "connectivity": connectivity,
        })
    return ports


def generate_tariffs(rng):
    tariffs = {}
    for hs_code in HS_CODES:
        tariffs[hs_code] = {"rates": {}}
        for origin in COUNTRIES[:10]:
            tariffs[hs_code]["rates"][f"{origin}-USA"] = {
                "rate": rand_float(rng, 10, 30),
                "description": f"{hs_code} from {origin}",
            }
    return tariffs


def write_json(path, payload):
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as f:
        json.dump(payload, f, indent=2)
        f.write("\n")


def main():
    parser = argparse.ArgumentParser(description="Generate randomized supplier, port and tariff datasets.")
    parser.add_argument("--out-dir", type=Path, default=DEFAULT_OUT_DIR)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--suppliers", type=int, default=120)
    parser.add_argument("--ports", type=int, default=30)
    args = parser.parse_args()

    rng = random.Random(args.seed)
    write_json(args.out_dir / "suppliers.json", generate_suppliers(rng, args.suppliers))
    write_json(args.out_dir / "ports.json", generate_ports(rng, args.ports))
    write_json(args.out_dir / "tariffs.json", generate_tariffs(rng))
    print(f"Dummy data generated in {args.out_dir}: suppliers.json, ports.json, tariffs.json")


if __name__ == "__main__":
    main()
