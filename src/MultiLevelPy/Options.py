#! /usr/bin/env python
# -*- coding: utf-8 -*-

##############################################################################
##  -- MultiLevelPy --
##  Library for Bayesian Inference of Brownian Traits on Hierarchical Trees
##
##  Copyright 2025 Mark Kessler, Luay Nakhleh.
##  All rights reserved.
##
##  See "LICENSE.txt" for terms and conditions of usage.
##
##  If you use this work or any portion thereof in published work,
##  please cite it as:
##
##     Mark Kessler, Luay Nakhleh. 2025.
##
##############################################################################

""" 
Author : Mark Kessler
Last Edit : 10/18/26
First Included in Version : 0.1.0
Docs   - [x]
Tests  - [x]
Design - [x]

Immutable configuration for the divide-and-conquer sampler and for the MCMC 
tree factor. Every option object validates itself on construction, so a 
misconfigured run fails before any sampling begins.
"""

from __future__ import annotations
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
import numpy as np

#########################
#### EXCEPTION CLASS ####
#########################

class ConfigurationError(Exception):
    """
    This exception is raised when an option object is built with values that
    can not describe a valid run.
    """

    def __init__(self, message : str = "Invalid configuration") -> None:
        """
        Initialize the exception with an error message.

        Args:
            message (str, optional): A custom error message. Defaults to 
                                     "Invalid configuration".
        Returns:
            N/A
        """
        self.message = message
        super().__init__(self.message)

########################
#### VARIANCE PRIOR ####
########################

class VariancePrior(ABC):
    """
    Prior (and default proposal) over the branch variance attached to every
    internal node.
    """

    @abstractmethod
    def log_density(self, variance : float) -> float:
        """
        *ABSTRACT METHOD*

        Args:
            variance (float): A candidate branch variance.
        Returns:
            float: The log density, -inf outside the support.
        """
        pass

    @abstractmethod
    def sample(self, rng : np.random.Generator) -> float:
        """
        *ABSTRACT METHOD*

        Args:
            rng (np.random.Generator): The run's random source.
        Returns:
            float: One draw.
        """
        pass


@dataclass(frozen = True)
class UniformVariancePrior(VariancePrior):
    """
    Uniform density on [0, max_variance).
    """
    max_variance : float = 10.0

    def __post_init__(self) -> None:
        if not (self.max_variance > 0 and math.isfinite(self.max_variance)):
            raise ConfigurationError("max_variance must be a positive, finite"
                                     f" number, got {self.max_variance}")

    def log_density(self, variance : float) -> float:
        if variance < 0 or variance >= self.max_variance:
            return -math.inf
        return -math.log(self.max_variance)

    def sample(self, rng : np.random.Generator) -> float:
        return float(rng.uniform(0.0, self.max_variance))


@dataclass(frozen = True)
class ExponentialVariancePrior(VariancePrior):
    """
    Exponential density with the given rate.
    """
    rate : float = 1.0

    def __post_init__(self) -> None:
        if not (self.rate > 0 and math.isfinite(self.rate)):
            raise ConfigurationError("rate must be a positive, finite number,"
                                     f" got {self.rate}")

    def log_density(self, variance : float) -> float:
        if variance < 0:
            return -math.inf
        return math.log(self.rate) - self.rate * variance

    def sample(self, rng : np.random.Generator) -> float:
        return float(rng.exponential(1.0 / self.rate))

###########################
#### RUN CONFIGURATION ####
###########################

class ResamplingPolicy(Enum):
    """
    When a node's freshly weighted population gets resampled.
    """
    ALWAYS = "always"
    ESS = "ess"
    NEVER = "never"


@dataclass(frozen = True)
class DcSmcOptions:
    """
    Options for DivideConquerMCAlgorithm.

    population_size -- number of particles kept at every node
    resampling -- the ResamplingPolicy
    ess_threshold -- under the ESS policy, resample when 
                     ESS < ess_threshold * population_size
    leaf_prior_alpha, leaf_prior_beta -- Beta pseudo-counts of the leaf 
                     proposal, which draws p ~ Beta(alpha + k, beta + n - k)
    variance_prior -- prior over branch variances
    variance_proposal -- if given, branch variances are drawn from it instead
                     of from the prior and weights are corrected accordingly
    """
    population_size : int = 1000
    resampling : ResamplingPolicy = ResamplingPolicy.ALWAYS
    ess_threshold : float = 0.5
    leaf_prior_alpha : float = 1.0
    leaf_prior_beta : float = 1.0
    variance_prior : VariancePrior = field(
        default_factory = ExponentialVariancePrior)
    variance_proposal : VariancePrior | None = None

    def __post_init__(self) -> None:
        if isinstance(self.population_size, bool) or \
           not isinstance(self.population_size, int) or \
           self.population_size < 1:
            raise ConfigurationError("population_size must be a positive "
                                     f"integer, got {self.population_size}")
        if not isinstance(self.resampling, ResamplingPolicy):
            raise ConfigurationError(f"Unknown resampling policy "
                                     f"{self.resampling!r}")
        if not 0.0 <= self.ess_threshold <= 1.0:
            raise ConfigurationError("ess_threshold must lie in [0, 1]")
        if self.leaf_prior_alpha <= 0 or self.leaf_prior_beta <= 0:
            raise ConfigurationError("Leaf Beta pseudo-counts must be > 0")
        if not isinstance(self.variance_prior, VariancePrior):
            raise ConfigurationError("variance_prior must be a VariancePrior")
        if self.variance_proposal is not None and \
           not isinstance(self.variance_proposal, VariancePrior):
            raise ConfigurationError("variance_proposal must be a "
                                     "VariancePrior or None")

    def proposal(self) -> VariancePrior:
        """
        Returns:
            VariancePrior: The distribution branch variances are drawn from.
        """
        if self.variance_proposal is None:
            return self.variance_prior
        return self.variance_proposal


@dataclass(frozen = True)
class MultiLevelModelOptions:
    """
    Options for the MCMC tree factor. Only the logit-transformed model is 
    supported; use_transform = False is rejected when a factor is built.
    """
    variance_prior : VariancePrior = field(
        default_factory = ExponentialVariancePrior)
    use_transform : bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.variance_prior, VariancePrior):
            raise ConfigurationError("variance_prior must be a VariancePrior")
