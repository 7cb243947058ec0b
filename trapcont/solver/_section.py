def update_section(self, U, p, itercont):
    """
    Moves the phase condition <x_0 - xpi, phi> = 0 onto the accepted orbit U, with xpi = x_0 and
    phi = F(x_0, p). Every later problem of the branch inherits the new section.

    Returns:
        bool: whether the section was updated.
    """
    every = self.prob.parameters["periodic_orbit"]["update_section_every_step"]
    if every <= 0 or itercont % every != 0:
        return False

    pb = self.problem_at(p)
    pb.update_section(U)
    self.pb0 = pb
    return True
