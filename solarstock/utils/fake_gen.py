from faker import Faker
from faker.providers import BaseProvider


class SolarProvider(BaseProvider):
    """
    Demo data for a solar installation business:
    panel / inverter / battery models, warehouse names, serial numbers.
    """

    product_types = ['Solar Panel', 'Inverter', 'Battery', 'Mounting Structure', 'Cable']

    brands = ['Helios', 'SunVolt', 'Photon', 'Zenith', 'Aurora', 'Radiant', 'Solis', 'Apex']

    models_by_type = {
        'Solar Panel': ['540W Mono PERC', '550W Bifacial', '400W Poly', '600W TOPCon'],
        'Inverter': ['3kW On-Grid', '5kW Hybrid', '10kW Three-Phase', '1kW Micro'],
        'Battery': ['5kWh LFP', '10kWh LFP', '150Ah Tubular'],
        'Mounting Structure': ['GI Rooftop Kit', 'Elevated Frame', 'Ground Mount'],
        'Cable': ['4 sq.mm DC Cable', '6 sq.mm DC Cable', 'AC Armoured Cable'],
    }

    # Types tracked unit-by-unit
    serialized_types = {'Solar Panel', 'Inverter', 'Battery'}

    hsn_codes = {
        'Solar Panel': '85414300',
        'Inverter': '85044090',
        'Battery': '85076000',
        'Mounting Structure': '73089090',
        'Cable': '85444999',
    }

    warehouse_suffixes = ['Central Depot', 'North Hub', 'South Hub', 'Site Store', 'Transit Yard']

    def solar_product_types(self):
        return list(self.product_types)

    def solar_is_serialized(self, product_type):
        return product_type in self.serialized_types

    def solar_product_name(self, product_type):
        model = self.random_element(self.models_by_type[product_type])
        return f"{self.random_element(self.brands)} {model}"

    def solar_warehouse_name(self):
        return f"{self.generator.city()} {self.random_element(self.warehouse_suffixes)}"

    def solar_serial(self, prefix='SN'):
        return f"{prefix}-{self.bothify('??######').upper()}"

    def solar_hsn(self, product_type):
        return self.hsn_codes.get(product_type, '85414300')


fake = Faker('en_IN')
fake.add_provider(SolarProvider)
