"""
Leaf energy balance.

The coupled and optimal-conductance solvers only depend on the abstract
``EnergyBalanceAdapter``: given the driving state, a trial leaf temperature
and a stomatal conductance it returns a corrected leaf temperature together
with the leaf-to-air VPD and boundary-layer conductance at that temperature.

``LeafEnergyBalance`` is a minimal implementation following Campbell &
Norman (1998): forced-convection boundary layer, radiative conductance and a
Newton step on the leaf energy budget Rnet - lambda E - H = 0.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .data_structures import LeafState
from .errors import InvalidParameterError

# Physical constants
R_GAS = 8.314            # J mol-1 K-1
CP_AIR = 29.29           # J mol-1 K-1, molar heat capacity of air
SIGMA = 5.67e-8          # W m-2 K-4
DH_AIR = 21.5e-6         # m2 s-1, heat diffusivity in air
M_AIR = 28.96e-3         # kg mol-1
GB_H2O_OVER_HEAT = 1.075  # ratio of boundary layer conductances, water to heat
C_TO_K = 273.15


def saturation_vapour_pressure(tc: float) -> float:
    """Tetens equation, kPa."""
    return 0.61078 * np.exp(17.27 * tc / (tc + 237.3))


def slope_saturation_vapour_pressure(tc: float) -> float:
    """Derivative of the Tetens equation, kPa K-1."""
    return saturation_vapour_pressure(tc) * 17.27 * 237.3 / (tc + 237.3) ** 2


def latent_heat_vaporization(tc: float) -> float:
    """Latent heat of vaporization of water, J mol-1."""
    return 45064.3 - 42.9143 * tc


def total_water_conductance(gs: float, gb: Optional[float]) -> float:
    """Stomatal and boundary-layer conductances in series."""
    if gb is None or not np.isfinite(gb):
        return gs
    if gs <= 0 or gb <= 0:
        return 0.0
    return gs * gb / (gs + gb)


@dataclass(frozen=True)
class EnergyBalanceUpdate:
    """Leaf conditions returned by one energy-balance evaluation."""
    tleaf: float
    vpd: float
    gb: float
    transpiration: float


class EnergyBalanceAdapter(ABC):
    """
    Interface between the gas-exchange solvers and a leaf energy model.

    The ``vpd`` of the driving LeafState is interpreted as the air vapour
    pressure deficit at ``tair``.
    """

    def air_vapour_pressure(self, state: LeafState) -> float:
        """Ambient vapour pressure (kPa)."""
        return saturation_vapour_pressure(state.air_temperature) - state.vpd

    def leaf_vpd(self, state: LeafState, tleaf: float) -> float:
        """Leaf-to-air VPD (kPa) at a given leaf temperature."""
        return max(saturation_vapour_pressure(tleaf) - self.air_vapour_pressure(state), 0.0)

    def boundary_layer_conductance(self, state: LeafState, tleaf: float) -> float:
        """Boundary-layer conductance to water vapour; inf means perfect coupling."""
        return np.inf

    @abstractmethod
    def update(self, state: LeafState, tleaf: float, gs: float) -> EnergyBalanceUpdate:
        """
        Correct the leaf temperature for a given stomatal conductance.

        Args:
            state: Driving state (air temperature, air VPD, pressure)
            tleaf: Current leaf temperature estimate (°C)
            gs: Stomatal conductance to water vapour (mol m⁻² s⁻¹)
        """


class LeafEnergyBalance(EnergyBalanceAdapter):
    """
    Single-leaf energy balance.

    Args:
        rnet: Isothermal net radiation absorbed by the leaf (W m⁻²)
        wind_speed: Wind speed at the leaf (m s⁻¹)
        leaf_width: Characteristic leaf dimension (m)
        emissivity: Leaf emissivity for the radiative conductance
        gb: Prescribed boundary-layer conductance to water vapour; computed
            from wind speed and leaf width when None
    """

    def __init__(
        self,
        rnet: float = 300.0,
        wind_speed: float = 2.0,
        leaf_width: float = 0.05,
        emissivity: float = 0.98,
        gb: Optional[float] = None
    ):
        if wind_speed <= 0 or leaf_width <= 0:
            raise InvalidParameterError("wind_speed and leaf_width must be > 0")
        if gb is not None and gb <= 0:
            raise InvalidParameterError(f"gb must be > 0 when given, got {gb}")
        self.rnet = rnet
        self.wind_speed = wind_speed
        self.leaf_width = leaf_width
        self.emissivity = emissivity
        self.gb = gb

    def __repr__(self) -> str:
        return (f"LeafEnergyBalance(rnet={self.rnet}, wind_speed={self.wind_speed}, "
                f"leaf_width={self.leaf_width}, gb={self.gb})")

    def heat_conductance(self, state: LeafState) -> float:
        """Two-sided forced-convection conductance to heat (mol m⁻² s⁻¹)."""
        tair_k = state.air_temperature + C_TO_K
        cmolar = state.patm * 1e3 / (R_GAS * tair_k)
        # Sutherland equation for dynamic viscosity
        mu = 1.458e-6 * tair_k ** 1.5 / (tair_k + 110.4)
        nu = mu * R_GAS * tair_k / (state.patm * 1e3 * M_AIR)
        prandtl = nu / DH_AIR
        d = 0.72 * self.leaf_width
        reynolds = self.wind_speed * d / nu
        gha = 0.664 * cmolar * DH_AIR * reynolds ** 0.5 * prandtl ** (1.0 / 3.0) / d
        return 2.0 * gha

    def radiative_conductance(self, state: LeafState) -> float:
        tair_k = state.air_temperature + C_TO_K
        return 4.0 * self.emissivity * SIGMA * tair_k ** 3 / CP_AIR

    def boundary_layer_conductance(self, state: LeafState, tleaf: float) -> float:
        if self.gb is not None:
            return self.gb
        # one-sided conductance to water vapour
        return 0.5 * self.heat_conductance(state) * GB_H2O_OVER_HEAT

    def update(self, state: LeafState, tleaf: float, gs: float) -> EnergyBalanceUpdate:
        tair = state.air_temperature
        gb = self.boundary_layer_conductance(state, tleaf)
        gw = total_water_conductance(max(gs, 0.0), gb)
        vpd = self.leaf_vpd(state, tleaf)
        transpiration = gw * vpd / state.patm

        gh = self.heat_conductance(state) + 2.0 * self.radiative_conductance(state)
        lam = latent_heat_vaporization(tair)
        slope = slope_saturation_vapour_pressure(tleaf)

        # Newton step on Rnet - lambda E(Tleaf) - Cp gH (Tleaf - Tair) = 0
        imbalance = self.rnet - lam * transpiration - CP_AIR * gh * (tleaf - tair)
        new_tleaf = tleaf + imbalance / (CP_AIR * gh + lam * slope * gw / state.patm)
        new_vpd = self.leaf_vpd(state, new_tleaf)
        return EnergyBalanceUpdate(
            tleaf=float(new_tleaf),
            vpd=float(new_vpd),
            gb=float(gb),
            transpiration=float(gw * new_vpd / state.patm),
        )
