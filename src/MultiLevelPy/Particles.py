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

Particles and weighted particle populations for the divide-and-conquer 
sampler.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Callable, Sequence
import numpy as np

from .BrownianModel import BrownianMessage
from .Probability import (effective_sample_size, log_sum_exp, 
                          normalize_log_weights, sanitize_log_weights)
from .Tree import Node


@dataclass(frozen = True, eq = False)
class Particle:
    """
    One sample of the latent state at a node.

    message -- the subtree's Brownian message. None only when the branch 
               variance was invalid, in which case the particle's weight is 
               -inf and it can never be selected.
    node -- the tree node this particle lives at
    variance -- branch variance drawn at an internal node, None at a leaf
    log_pi -- binomial log-probability of the leaf data at the proposed p 
              (0 at internal nodes)
    children -- the child particles this one was built from
    """
    message : BrownianMessage | None
    node : Node
    variance : float | None = None
    log_pi : float = 0.0
    children : tuple[Particle, ...] = ()

    def ancestry(self) -> dict[Node, Particle]:
        """
        Collect this particle and, recursively, every particle it was built
        from. For a root particle this is one joint sample over the tree.

        Args:
            N/A
        Returns:
            dict[Node, Particle]: A map from each node of the subtree to its 
                                  particle.
        """
        sample : dict[Node, Particle] = {}
        stack : list[Particle] = [self]
        while stack:
            particle = stack.pop()
            sample[particle.node] = particle
            stack.extend(particle.children)
        return sample

    def value(self) -> float:
        """
        Returns:
            float: First coordinate of the message (the logit-scale trait).
        """
        return float(self.message.values[0])


class ParticlePopulation:
    """
    A fixed-size, weighted set of particles at one node.
    """

    def __init__(self, 
                 node : Node, 
                 particles : Sequence[Particle], 
                 log_weights : Sequence[float],
                 log_normalization : float = 0.0) -> None:
        """
        Args:
            node (Node): The node all particles belong to.
            particles (Sequence[Particle]): The particles.
            log_weights (Sequence[float]): One unnormalized log weight per 
                                           particle. NaN is read as -inf.
            log_normalization (float, optional): Running estimate of the log
                                                 marginal likelihood of the
                                                 subtree. Defaults to 0.
        Returns:
            N/A
        """
        if len(particles) != len(log_weights):
            raise ValueError("Need exactly one weight per particle")
        self.node : Node = node
        self.particles : list[Particle] = list(particles)
        self.log_weights : np.ndarray = sanitize_log_weights(log_weights)
        self.log_normalization : float = log_normalization

    def __len__(self) -> int:
        return len(self.particles)

    def __iter__(self):
        return iter(self.particles)

    def is_degenerate(self) -> bool:
        """
        Returns:
            bool: True if no particle has positive weight.
        """
        return bool(np.all(np.isneginf(self.log_weights)))

    def is_uniform(self) -> bool:
        finite = np.isfinite(self.log_weights)
        return bool(np.all(finite) 
                    and np.all(self.log_weights == self.log_weights[0]))

    def normalized_weights(self) -> np.ndarray:
        return normalize_log_weights(self.log_weights)

    def ess(self) -> float:
        return effective_sample_size(self.log_weights)

    def log_mean_weight(self) -> float:
        """
        Returns:
            float: log of the average (unnormalized) weight.
        """
        return log_sum_exp(self.log_weights) - math.log(len(self))

    def sample_indices(self, rng : np.random.Generator, 
                       size : int) -> np.ndarray:
        """
        Draw particle indices with replacement, proportional to weight.
        """
        return rng.choice(len(self), size = size, 
                          p = self.normalized_weights())

    def sample(self, rng : np.random.Generator) -> Particle:
        return self.particles[int(self.sample_indices(rng, 1)[0])]

    def resample(self, rng : np.random.Generator) -> ParticlePopulation:
        """
        Multinomial resampling. The returned population has the same size, 
        uniform weights (all 0 in log space) and the same normalization.

        Args:
            rng (np.random.Generator): The run's random source.
        Returns:
            ParticlePopulation: A new population. This one is left untouched.
        """
        indices = self.sample_indices(rng, len(self))
        return ParticlePopulation(self.node,
                                  [self.particles[i] for i in indices],
                                  np.zeros(len(self)),
                                  self.log_normalization)

    def expectation(self, statistic : Callable[[Particle], float]) -> float:
        """
        Weighted average of a statistic over the population. Particles with 
        zero weight are never evaluated.

        Args:
            statistic (Callable[[Particle], float]): Function of a particle.
        Returns:
            float: The self-normalized importance sampling estimate.
        """
        weights = self.normalized_weights()
        return float(sum(w * statistic(particle) 
                         for w, particle in zip(weights, self.particles)
                         if w > 0))
