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

A small Metropolis-Hastings driver for MultiLevelBMTreeFactor. Each 
iteration sweeps over every factor, perturbs its contents, and accepts or 
reverts based on the joint log density. States with density -inf (eg, a 
negative variance) are always rejected.
"""

from __future__ import annotations
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
import numpy as np

from .Logger import SampleSink
from .TreeFactor import MultiLevelBMTreeFactor

logger = logging.getLogger(__name__)

###########################
#### EXCEPTION CLASSES ####
###########################

class MetropolisHastingsException(Exception):
    """
    This exception is raised when there is an error running the Metropolis 
    Hastings algorithm.
    """

    def __init__(self, 
                 message : str = "Error running Metropolis-Hastings") -> None:
        """
        Initialize the exception with an error message.

        Args:
            message (str, optional): A custom error message. Defaults to 
                                     "Error running Metropolis-Hastings".
        Returns:
            N/A
        """
        self.message = message
        super().__init__(self.message)

###############
#### MOVES ####
###############

class Move(ABC):
    """
    Abstract superclass for changes to a factor's contents. A move must be 
    able to undo itself.
    """

    @abstractmethod
    def execute(self) -> None:
        pass

    @abstractmethod
    def undo(self) -> None:
        pass

    def hastings_ratio(self) -> float:
        """
        Returns:
            float: log q(old | new) - log q(new | old). 0 for symmetric moves.
        """
        return 0.0


class ContentsMove(Move):
    """
    Replace the contents of one factor with a new value.
    """

    def __init__(self, factor : MultiLevelBMTreeFactor, 
                 new_value : float) -> None:
        self.factor : MultiLevelBMTreeFactor = factor
        self.old_value : float = factor.contents
        self.new_value : float = new_value

    def execute(self) -> None:
        self.factor.contents = self.new_value

    def undo(self) -> None:
        self.factor.contents = self.old_value

##########################
#### PROPOSAL KERNELS ####
##########################

class ProposalKernel(ABC):
    """
    Abstract class that defines proposal kernel behavior.
    
    In general, simply must have a generate method that spits out a move.
    """

    @abstractmethod
    def generate(self, factor : MultiLevelBMTreeFactor, 
                 rng : np.random.Generator) -> Move:
        """
        *ABSTRACT METHOD*
        
        Generate the next move for one factor.
    
        Args:
            factor (MultiLevelBMTreeFactor): The factor to perturb.
            rng (np.random.Generator): The run's random source.
        Returns:
            Move: A move that has not been executed yet.
        """
        raise NotImplementedError("Calling abstract method from the "
                                  "ProposalKernel superclass.")


class RandomWalkKernel(ProposalKernel):
    """
    Symmetric Gaussian random walk on a factor's contents.
    """

    def __init__(self, scale : float = 0.5) -> None:
        if not scale > 0:
            raise MetropolisHastingsException("Random walk scale must be > 0")
        self.scale : float = scale

    def generate(self, factor : MultiLevelBMTreeFactor, 
                 rng : np.random.Generator) -> ContentsMove:
        return ContentsMove(factor, 
                            factor.contents + self.scale * rng.normal())

##################
#### SAMPLER #####
##################

@dataclass(frozen = True)
class MCMCSummary:
    iterations : int
    accepted : int
    proposed : int
    final_log_density : float

    @property
    def acceptance_rate(self) -> float:
        if self.proposed == 0:
            return 0.0
        return self.accepted / self.proposed


class MetropolisHastings:
    """
    Metropolis-within-Gibbs over the contents of a factor tree.
    """

    def __init__(self, 
                 factor : MultiLevelBMTreeFactor,
                 kernel : ProposalKernel = None,
                 num_iter : int = 500,
                 sink : SampleSink = None,
                 log_depth : int = 1) -> None:
        """
        Args:
            factor (MultiLevelBMTreeFactor): Any factor of the tree. The whole
                                             tree is sampled.
            kernel (ProposalKernel, optional): Move generator. Defaults to 
                                               RandomWalkKernel().
            num_iter (int, optional): Number of sweeps. Defaults to 500.
            sink (SampleSink, optional): Receives samples after every sweep.
                                         Defaults to None (no recording).
            log_depth (int, optional): Number of tree levels recorded into the
                                       sink. Defaults to 1 (root only).
        Returns:
            N/A
        """
        if num_iter < 0:
            raise MetropolisHastingsException("num_iter must be >= 0")
        self.factor : MultiLevelBMTreeFactor = factor.root()
        self.kernel : ProposalKernel = kernel if kernel is not None \
                                       else RandomWalkKernel()
        self.num_iter : int = num_iter
        self.sink : SampleSink = sink
        self.log_depth : int = log_depth

    def run(self, rng : np.random.Generator) -> MCMCSummary:
        """
        Run the chain. The factor tree is left in the final state.

        Args:
            rng (np.random.Generator): The only source of randomness.
        Returns:
            MCMCSummary: Acceptance counts and the final log density.
        Raises:
            MetropolisHastingsException: If the starting state has density 
                                         -inf.
        """
        start = self.factor.evaluate()
        if not start.is_valid:
            raise MetropolisHastingsException("Initial state has zero density"
                                              f": {start.reason}")
        current = start.value
        factors = list(self.factor.factors())
        accepted = 0
        proposed = 0
        
        for iter_no in range(self.num_iter):
            for target in factors:
                move = self.kernel.generate(target, rng)
                move.execute()
                candidate = self.factor.log_density()
                proposed += 1
                
                #(logP(B) - logP(A)) + (logP(A|B) - logP(B|A)) > log(U(0, 1))
                log_ratio = candidate - current + move.hastings_ratio()
                if candidate > -math.inf and \
                   math.log(1.0 - rng.random()) < log_ratio:
                    current = candidate
                    accepted += 1
                else:
                    move.undo()
            
            if self.sink is not None:
                self.factor.log_samples(self.log_depth, self.sink, iter_no)
            logger.debug("ITER #%d LOG DENSITY = %f", iter_no, current)
        
        summary = MCMCSummary(self.num_iter, accepted, proposed, current)
        logger.info("MH done: %d iterations, acceptance rate %.3f, final log "
                    "density %.4f", summary.iterations, 
                    summary.acceptance_rate, summary.final_log_density)
        return summary
